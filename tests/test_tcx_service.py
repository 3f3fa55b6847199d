"""Tests for TCX encoding."""
import os
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta

import pytest

from wod_sync_api.models import Workout, WorkoutResult, WorkoutType
from wod_sync_api.services.tcx_service import (
    MAX_HR,
    MAX_SLUG_LENGTH,
    MIN_HR,
    TCX_NS,
    EncodingError,
    TcxService,
    generate_heart_rate_track,
    heart_rate_at,
    normalize_class_time,
    sanitize_filename,
    track_point_count,
)

NS = {"tcx": TCX_NS}


def _workout(**overrides) -> Workout:
    data = dict(id="1001", date=datetime(2024, 3, 1), name="Fran", type=WorkoutType.BENCHMARK, class_time="18:30")
    data.update(overrides)
    return Workout(**data)


class TestHeartRateTrack:
    @pytest.mark.parametrize("total", [0, 30, 90, 299, 600, 1800, 3600, 5400, 10800])
    def test_heart_rate_bounds(self, total):
        for elapsed in range(0, max(total, 120) + 1, 10):
            assert MIN_HR <= heart_rate_at(elapsed, total) <= MAX_HR

    @pytest.mark.parametrize(
        "minutes, expected",
        [(0, 4), (1, 4), (2, 4), (10, 20), (45, 90), (60, 120), (90, 120)],
    )
    def test_point_count_is_clamped(self, minutes, expected):
        assert track_point_count(timedelta(minutes=minutes)) == expected

    @pytest.mark.parametrize("minutes", [2, 7, 20, 45, 60])
    def test_track_spans_duration(self, minutes):
        start = datetime(2024, 3, 1, 18, 30)
        duration = timedelta(minutes=minutes)
        track = generate_heart_rate_track(start, duration)
        assert track[0][0] == start
        assert abs((start + duration) - track[-1][0]) <= timedelta(seconds=30)

    def test_points_are_30_seconds_apart(self):
        track = generate_heart_rate_track(datetime(2024, 3, 1), timedelta(minutes=10))
        gaps = {(b[0] - a[0]).total_seconds() for a, b in zip(track, track[1:])}
        assert gaps == {30.0}

    def test_profile_phases(self):
        total = 3600
        assert heart_rate_at(0, total) < 115
        assert 145 <= heart_rate_at(1800, total) <= 163
        assert heart_rate_at(3590, total) <= 130

    def test_deterministic(self):
        start = datetime(2024, 3, 1)
        assert generate_heart_rate_track(start, timedelta(minutes=30)) == generate_heart_rate_track(start, timedelta(minutes=30))


class TestFilenames:
    def test_unsafe_characters_removed(self):
        slug = sanitize_filename('A/B\\C:D*E?F"G<H>I|J K')
        for ch in '/\\:*?"<>| ':
            assert ch not in slug
        assert "--" not in slug
        assert slug == "a-b-c-d-e-f-g-h-i-j-k"

    def test_repeated_and_edge_hyphens(self):
        assert sanitize_filename("  // Murph //  ") == "murph"

    def test_length_capped(self):
        slug = sanitize_filename("x" * 80)
        assert len(slug) == MAX_SLUG_LENGTH

    def test_empty_falls_back(self):
        assert sanitize_filename("///") == "workout"
        assert sanitize_filename("") == "workout"

    def test_filename_pattern(self, tmp_path):
        service = TcxService(str(tmp_path))
        assert service.filename_for(_workout()) == "2024-03-01_1830_fran.tcx"
        assert service.filename_for(_workout(class_time="")) == "2024-03-01_0000_fran.tcx"

    def test_filename_falls_back_to_workout_time(self, tmp_path):
        service = TcxService(str(tmp_path))
        workout = _workout(date=datetime(2024, 3, 1, 7, 15), class_time="")
        assert service.filename_for(workout) == "2024-03-01_0715_fran.tcx"

    def test_same_day_same_name_get_distinct_files(self, tmp_path):
        service = TcxService(str(tmp_path))
        morning = _workout(id="1", date=datetime(2024, 3, 1, 7, 0), name="WOD", class_time="")
        evening = _workout(id="2", date=datetime(2024, 3, 1, 19, 0), name="WOD", class_time="")

        files = service.generate_map([morning, evening])

        assert files["1"] != files["2"]
        assert os.path.basename(files["1"]) == "2024-03-01_0700_wod.tcx"
        assert os.path.basename(files["2"]) == "2024-03-01_1900_wod.tcx"
        assert len(os.listdir(tmp_path)) == 2

    @pytest.mark.parametrize("value, expected", [("18:30", "1830"), ("0930", "0930"), ("9:30", ""), ("", "")])
    def test_normalize_class_time(self, value, expected):
        assert normalize_class_time(value) == expected


class TestStartAndDuration:
    def test_start_time_uses_class_time(self, tmp_path):
        service = TcxService(str(tmp_path))
        assert service.start_time(_workout()) == datetime(2024, 3, 1, 18, 30)
        assert service.start_time(_workout(class_time="")) == datetime(2024, 3, 1)

    def test_duration_precedence(self, tmp_path):
        service = TcxService(str(tmp_path), default_duration=timedelta(minutes=60))
        assert service.effective_duration(
            _workout(duration=timedelta(minutes=20), result=WorkoutResult(time=timedelta(minutes=5)))
        ) == timedelta(minutes=20)
        assert service.effective_duration(_workout(result=WorkoutResult(time=timedelta(minutes=5)))) == timedelta(minutes=5)
        assert service.effective_duration(_workout()) == timedelta(minutes=60)


class TestGenerate:
    def test_document_structure(self, tmp_path):
        service = TcxService(str(tmp_path / "out"))
        path = service.generate(_workout(duration=timedelta(minutes=10), box_name="testbox"))

        assert os.path.exists(path)
        root = ET.parse(path).getroot()
        assert root.tag == f"{{{TCX_NS}}}TrainingCenterDatabase"

        activity = root.find("tcx:Activities/tcx:Activity", NS)
        assert activity.get("Sport") == "Other"
        lap = activity.find("tcx:Lap", NS)
        assert lap.find("tcx:TotalTimeSeconds", NS).text == "600.0"
        assert lap.find("tcx:Calories", NS).text == "400"
        assert lap.find("tcx:AverageHeartRateBpm/tcx:Value", NS).text == "150"
        assert lap.find("tcx:MaximumHeartRateBpm/tcx:Value", NS).text == "175"
        assert len(lap.findall("tcx:Track/tcx:Trackpoint", NS)) == 20
        assert "🏠 Box: testbox" in lap.find("tcx:Notes", NS).text
        assert root.find("tcx:Author/tcx:Name", NS).text == "WOD Sync"

    def test_document_declares_only_used_namespaces(self, tmp_path):
        path = TcxService(str(tmp_path)).generate(_workout())
        with open(path, encoding="utf-8") as f:
            text = f.read()
        assert f'xmlns="{TCX_NS}"' in text
        assert 'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"' in text
        assert "xmlns:ns0" not in text

    def test_result_heart_rate_and_calories_used(self, tmp_path):
        workout = _workout(result=WorkoutResult(avg_heart_rate=140, max_heart_rate=180, calories=520))
        root = TcxService(str(tmp_path)).build_document(workout).getroot()
        lap = root.find("tcx:Activities/tcx:Activity/tcx:Lap", NS)
        assert lap.find("tcx:Calories", NS).text == "520"
        assert lap.find("tcx:AverageHeartRateBpm/tcx:Value", NS).text == "140"

    def test_strength_still_other_sport(self, tmp_path):
        root = TcxService(str(tmp_path)).build_document(_workout(type=WorkoutType.STRENGTH)).getroot()
        assert root.find("tcx:Activities/tcx:Activity", NS).get("Sport") == "Other"

    def test_write_failure_raises_encoding_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(EncodingError):
            TcxService(str(blocker / "sub")).generate(_workout())

    def test_generate_map_tolerates_partial_failure(self, tmp_path, monkeypatch):
        service = TcxService(str(tmp_path))
        original = service.build_document

        def flaky(workout):
            if workout.id == "bad":
                raise ValueError("boom")
            return original(workout)

        monkeypatch.setattr(service, "build_document", flaky)
        files = service.generate_map([_workout(id="a", name="A"), _workout(id="bad", name="B"), _workout(id="c", name="C")])

        assert sorted(files) == ["a", "c"]
        assert service.generate_all([_workout(id="a", name="A")]) == [files["a"]]
