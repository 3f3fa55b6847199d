from datetime import date, datetime, timedelta

import pytest

from wod_sync_api.config import Settings, parse_platforms, resolve_date_range


class TestParsePlatforms:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("strava", ["strava"]),
            ("garmin", ["garmin"]),
            ("garmin,strava", ["strava", "garmin"]),
            (" Strava , GARMIN ", ["strava", "garmin"]),
            ("all", ["strava", "garmin"]),
            ("", ["strava"]),
            (None, ["strava"]),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_platforms(value) == expected

    def test_unknown_platform(self):
        with pytest.raises(ValueError, match="nike"):
            parse_platforms("strava,nike")


class TestResolveDateRange:
    TODAY = date(2024, 3, 10)

    def test_days_back(self):
        start, end = resolve_date_range(days=3, today=self.TODAY)
        assert start == datetime(2024, 3, 7, 0, 0, 0)
        assert end == datetime(2024, 3, 10, 23, 59, 59)

    def test_explicit_range(self):
        start, end = resolve_date_range(start=date(2024, 1, 1), end=date(2024, 1, 31), today=self.TODAY)
        assert start == datetime(2024, 1, 1)
        assert end == datetime(2024, 1, 31, 23, 59, 59)

    def test_start_only_runs_to_today(self):
        _, end = resolve_date_range(start=date(2024, 3, 1), today=self.TODAY)
        assert end == datetime(2024, 3, 10, 23, 59, 59)

    def test_start_after_end(self):
        with pytest.raises(ValueError):
            resolve_date_range(start=date(2024, 3, 5), end=date(2024, 3, 1), today=self.TODAY)


class TestSettings:
    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AIMHARDER_EMAIL", "athlete@example.com")
        monkeypatch.setenv("WOD_SYNC_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("WOD_SYNC_PLATFORMS", "all")
        monkeypatch.setenv("WOD_SYNC_DEFAULT_DURATION_MIN", "45")
        monkeypatch.setenv("WEBHOOK_PORT", "not-a-number")

        cfg = Settings()

        assert cfg.AIMHARDER_EMAIL == "athlete@example.com"
        assert cfg.HISTORY_FILE == str(tmp_path / "sync_history.json")
        assert cfg.TCX_DIR == str(tmp_path / "tcx")
        assert cfg.PLATFORMS == ["strava", "garmin"]
        assert cfg.default_duration == timedelta(minutes=45)
        assert cfg.WEBHOOK_PORT == 8080

    def test_invalid_platforms_fall_back_to_strava(self, monkeypatch):
        monkeypatch.setenv("WOD_SYNC_PLATFORMS", "nike")
        assert Settings().PLATFORMS == ["strava"]

    def test_empty_webhook_token_disables_auth(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_AUTH_TOKEN", "")
        assert Settings().WEBHOOK_AUTH_TOKEN is None

    def test_validate_source_lists_missing(self, monkeypatch):
        for name in ("AIMHARDER_EMAIL", "AIMHARDER_PASSWORD", "AIMHARDER_USER_ID"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AIMHARDER_EMAIL", "athlete@example.com")
        assert Settings().validate_source() == ["AIMHARDER_PASSWORD", "AIMHARDER_USER_ID"]

    def test_ensure_directories(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WOD_SYNC_DATA_DIR", str(tmp_path / "data"))
        cfg = Settings()
        cfg.ensure_directories()
        assert (tmp_path / "data" / "tcx").is_dir()
