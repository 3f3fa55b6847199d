"""Tests for the end-to-end sync pipeline with fake source and platforms."""
import threading
from datetime import date, datetime

import pytest
import requests

from factories import FakePlatform, FakeSource, make_record
from wod_sync_api.clients.base import AuthError
from wod_sync_api.config import Settings
from wod_sync_api.models import SyncOptions
from wod_sync_api.services.history_store import HistoryStore
from wod_sync_api.services.sync_runner import SyncRunner

NOW = datetime(2024, 3, 2, 9, 0, 0)


@pytest.fixture
def config(tmp_path):
    cfg = Settings()
    cfg.DATA_DIR = str(tmp_path)
    cfg.TCX_DIR = str(tmp_path / "tcx")
    cfg.HISTORY_FILE = str(tmp_path / "history.json")
    cfg.TOKENS_FILE = str(tmp_path / "tokens.json")
    cfg.GARMIN_DIR = str(tmp_path / "garmin")
    cfg.PLATFORMS = ["strava"]
    cfg.DEFAULT_DAYS = 30
    return cfg


@pytest.fixture
def source():
    return FakeSource(
        pages={
            0: ([make_record(1001), make_record(1002, when="20240301070000")], 50),
            50: ([make_record(900, when="20240101070000")], 0),
        }
    )


def _runner(config, source, platforms=None):
    platforms = platforms or {"strava": FakePlatform("strava")}
    sleeps = []
    runner = SyncRunner(
        config=config,
        source=source,
        platform_factory=lambda name: platforms[name],
        now=lambda: NOW,
        sleep=sleeps.append,
    )
    return runner, platforms


def _options(config, **overrides) -> SyncOptions:
    values = dict(
        platforms=["strava"],
        start=datetime(2024, 3, 1),
        end=datetime(2024, 3, 1, 23, 59, 59),
        tcx_dir=config.TCX_DIR,
        history_file=config.HISTORY_FILE,
    )
    values.update(overrides)
    return SyncOptions(**values)


class TestBuildOptions:
    def test_days_window(self, config, source):
        runner, _ = _runner(config, source)
        options = runner.build_options(days=1)
        assert options.start == datetime(2024, 3, 1)
        assert options.end == datetime(2024, 3, 2, 23, 59, 59)
        assert options.platforms == ["strava"]

    def test_default_days_from_config(self, config, source):
        config.DEFAULT_DAYS = 7
        runner, _ = _runner(config, source)
        assert runner.build_options().start == datetime(2024, 2, 24)

    def test_platform_override(self, config, source):
        runner, _ = _runner(config, source)
        assert runner.build_options(platform="all").platforms == ["strava", "garmin"]

    def test_explicit_dates(self, config, source):
        runner, _ = _runner(config, source)
        options = runner.build_options(start=date(2024, 1, 1), end=date(2024, 1, 31))
        assert options.start == datetime(2024, 1, 1)
        assert options.end == datetime(2024, 1, 31, 23, 59, 59)

    def test_bad_platform(self, config, source):
        runner, _ = _runner(config, source)
        with pytest.raises(ValueError):
            runner.build_options(platform="nike")


class TestFetchWorkouts:
    def test_pages_are_followed_and_window_applied(self, config, source):
        runner, _ = _runner(config, source)
        workouts = runner.fetch_workouts(datetime(2024, 3, 1), datetime(2024, 3, 1, 23, 59, 59))

        assert source.logins == 1
        assert source.requested == [0, 50]
        assert sorted(w.id for w in workouts) == ["1001", "1002"]

    def test_build_platform_rejects_unknown(self, config):
        runner = SyncRunner(config=config)
        with pytest.raises(ValueError):
            runner.build_platform("nike")


class TestRun:
    def test_uploads_new_workouts(self, config, source):
        runner, platforms = _runner(config, source)
        summary = runner.run(_options(config))

        assert summary.success is True
        assert summary.fetched == 2
        assert summary.uploaded == 2
        assert summary.errors == 0
        assert {m.external_id for m in platforms["strava"].uploads} == {"1001", "1002"}
        assert summary.completed_at == NOW

        history = HistoryStore.load(config.HISTORY_FILE)
        assert history.is_synced("1001", "strava")
        assert history.is_synced("1002", "strava")

    def test_second_run_skips_everything(self, config, source):
        runner, platforms = _runner(config, source)
        runner.run(_options(config))
        platforms["strava"].uploads.clear()

        summary = runner.run(_options(config))

        assert summary.success is True
        assert summary.uploaded == 0
        assert summary.skipped == 2
        assert summary.message == "All 2 workouts already synced"
        assert platforms["strava"].uploads == []

    def test_force_uploads_again(self, config, source):
        runner, platforms = _runner(config, source)
        runner.run(_options(config))
        platforms["strava"].remote.clear()
        platforms["strava"].uploads.clear()

        summary = runner.run(_options(config, force=True))

        assert summary.uploaded == 2
        assert len(platforms["strava"].uploads) == 2

    def test_no_workouts_in_window(self, config, source):
        runner, platforms = _runner(config, source)
        summary = runner.run(_options(config, start=datetime(2023, 1, 1), end=datetime(2023, 1, 2)))

        assert summary.success is True
        assert summary.fetched == 0
        assert summary.message == "No workouts found in date range"
        assert platforms["strava"].uploads == []

    def test_dry_run_builds_previews_without_uploading(self, config, source):
        runner, platforms = _runner(config, source)
        summary = runner.run(_options(config, dry_run=True))

        assert summary.message == "Dry run: 2 workouts would be uploaded"
        assert {p.external_id for p in summary.previews} == {"1001", "1002"}
        assert all(p.tcx_file.endswith(".tcx") for p in summary.previews)
        assert platforms["strava"].uploads == []
        assert len(HistoryStore.load(config.HISTORY_FILE)) == 0

    def test_source_auth_failure(self, config):
        runner, platforms = _runner(config, FakeSource(login_error=AuthError("bad password")))
        summary = runner.run(_options(config))

        assert summary.success is False
        assert summary.message.startswith("Source authentication failed")
        assert platforms["strava"].uploads == []

    def test_source_network_failure(self, config):
        runner, _ = _runner(config, FakeSource(login_error=requests.ConnectionError("down")))
        summary = runner.run(_options(config))

        assert summary.success is False
        assert summary.message.startswith("Failed to fetch activities")

    def test_platform_auth_failure(self, config, source):
        platforms = {"strava": FakePlatform("strava", auth_error=AuthError("token revoked"))}
        runner, _ = _runner(config, source, platforms)
        summary = runner.run(_options(config))

        assert summary.success is False
        assert summary.message.startswith("Authentication failed")
        assert platforms["strava"].uploads == []

    def test_upload_failure_counts_error(self, config, source):
        from wod_sync_api.clients.base import UploadError

        platforms = {"strava": FakePlatform("strava", upload_errors={"1002": UploadError("rejected")})}
        runner, _ = _runner(config, source, platforms)
        summary = runner.run(_options(config))

        assert summary.success is False
        assert summary.uploaded == 1
        assert summary.errors == 1
        assert "1002@strava" in summary.failures

    def test_two_platforms(self, config, source):
        platforms = {"strava": FakePlatform("strava"), "garmin": FakePlatform("garmin")}
        runner, _ = _runner(config, source, platforms)
        summary = runner.run(_options(config, platforms=["strava", "garmin"]))

        assert summary.uploaded == 4
        assert len(platforms["garmin"].uploads) == 2

    def test_cancelled_before_upload(self, config):
        cancel = threading.Event()

        class InterruptedSource(FakeSource):
            def fetch_activities_page(self, cursor):
                page = super().fetch_activities_page(cursor)
                cancel.set()
                return page

        source = InterruptedSource(pages={0: ([make_record(1001)], 0)})
        runner, platforms = _runner(config, source)

        summary = runner.run(_options(config), cancel)

        assert summary.cancelled is True
        assert summary.message == "Sync cancelled"
        assert platforms["strava"].uploads == []


class TestStatus:
    def test_status_reports_history(self, config, source):
        runner, _ = _runner(config, source)
        runner.run(_options(config))

        status = runner.status()

        assert status["workouts_tracked"] == 2
        assert status["platforms"]["strava"]["synced"] == 2
        assert status["strava_authorized"] is False
        assert status["garmin_session"] is False
        assert status["default_platforms"] == ["strava"]
