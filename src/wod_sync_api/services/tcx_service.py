"""
TCX file generation.

Gym workouts carry no GPS or sensor data, so each file holds one lap
spanning the workout and a synthesized heart-rate track. Destination
platforms estimate calories from heart rate, and without a track they show
zero calories for these activities.
"""
import logging
import math
import os
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from wod_sync_api.models import Workout, WorkoutType
from wod_sync_api.services.description_formatter import DescriptionFormatter

logger = logging.getLogger(__name__)

TCX_NS = "http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = (
    f"{TCX_NS} http://www.garmin.com/xmlschemas/TrainingCenterDatabasev2.xsd"
)

CREATOR_NAME = "WOD Sync"
DEFAULT_DURATION = timedelta(minutes=60)
DEFAULT_CALORIES = 400
DEFAULT_AVG_HR = 150
DEFAULT_MAX_HR = 175

# Heart-rate track
TRACK_STEP_SECONDS = 30
MIN_TRACK_POINTS = 4
MAX_TRACK_POINTS = 120
WARMUP_SECONDS = 5 * 60
COOLDOWN_SECONDS = 5 * 60
MIN_HR = 100
MAX_HR = 185

MAX_SLUG_LENGTH = 50
_UNSAFE_FILENAME_CHARS = re.compile(r"[/\\:*?\"<>|\s]")
_REPEATED_HYPHENS = re.compile(r"-{2,}")

ET.register_namespace("", TCX_NS)
ET.register_namespace("xsi", XSI_NS)


class EncodingError(RuntimeError):
    """Raised when a workout cannot be written as a TCX file."""


def heart_rate_at(elapsed: int, total: int) -> int:
    """
    Synthesized heart rate `elapsed` seconds into a `total`-second workout.

    Warm-up ramps 110 -> 140 over the first five minutes, cool-down ramps
    160 -> 120 over the last five, and the work phase oscillates around
    148-160. A small deterministic jitter keeps the trace from looking flat.
    """
    if elapsed < WARMUP_SECONDS:
        progress = elapsed / WARMUP_SECONDS
        hr = 110 + int(progress * 30)
    elif elapsed > total - COOLDOWN_SECONDS:
        progress = (elapsed - (total - COOLDOWN_SECONDS)) / COOLDOWN_SECONDS
        hr = 160 - int(progress * 40)
    else:
        hr = 148 + int(12 * (0.5 + 0.5 * math.sin(elapsed / 30.0)))

    hr += (elapsed % 7) - 3
    return max(MIN_HR, min(MAX_HR, hr))


def track_point_count(duration: timedelta) -> int:
    points = int(duration.total_seconds()) // TRACK_STEP_SECONDS
    return max(MIN_TRACK_POINTS, min(MAX_TRACK_POINTS, points))


def generate_heart_rate_track(start: datetime, duration: timedelta) -> List[Tuple[datetime, int]]:
    """(timestamp, bpm) pairs every 30 seconds from `start`."""
    total = int(duration.total_seconds())
    track = []
    for i in range(track_point_count(duration)):
        elapsed = i * TRACK_STEP_SECONDS
        track.append((start + timedelta(seconds=elapsed), heart_rate_at(elapsed, total)))
    return track


def sanitize_filename(name: str) -> str:
    """Lower-case slug safe for file names, at most 50 characters."""
    slug = _UNSAFE_FILENAME_CHARS.sub("-", name or "")
    slug = _REPEATED_HYPHENS.sub("-", slug).strip("-").lower()
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "workout"


def format_timestamp(value: datetime) -> str:
    """RFC 3339 timestamp. Naive datetimes are taken as local time."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.replace(microsecond=0).isoformat()


def normalize_class_time(class_time: str) -> str:
    """'09:30' -> '0930'; anything that is not four digits afterwards -> ''."""
    digits = (class_time or "").replace(":", "").strip()
    return digits if len(digits) == 4 and digits.isdigit() else ""


def workout_start_time(workout: Workout) -> datetime:
    """Workout date combined with the class time of day, when one is known."""
    hhmm = normalize_class_time(workout.class_time)
    if not hhmm:
        return workout.date
    try:
        return workout.date.replace(
            hour=int(hhmm[:2]), minute=int(hhmm[2:]), second=0, microsecond=0
        )
    except ValueError:
        return workout.date


def map_sport(workout_type: WorkoutType) -> str:
    """TCX has no CrossFit or strength sport, so every workout is 'Other'."""
    return "Other"


class TcxService:
    """Writes Workouts as TCX files into an output directory."""

    def __init__(self, output_dir: str, default_duration: timedelta = DEFAULT_DURATION):
        self.output_dir = output_dir
        self.default_duration = default_duration

    def start_time(self, workout: Workout) -> datetime:
        return workout_start_time(workout)

    def effective_duration(self, workout: Workout) -> timedelta:
        if workout.duration and workout.duration.total_seconds() > 0:
            return workout.duration
        if workout.result and workout.result.time and workout.result.time.total_seconds() > 0:
            return workout.result.time
        return self.default_duration

    def filename_for(self, workout: Workout) -> str:
        """Time of day comes from the class time, else from the workout timestamp."""
        hhmm = normalize_class_time(workout.class_time) or f"{workout.date:%H%M}"
        return f"{workout.date:%Y-%m-%d}_{hhmm}_{sanitize_filename(workout.name)}.tcx"

    def build_document(self, workout: Workout) -> ET.ElementTree:
        start = self.start_time(workout)
        duration = self.effective_duration(workout)
        start_text = format_timestamp(start)
        notes = DescriptionFormatter.build_notes(workout)

        root = ET.Element(f"{{{TCX_NS}}}TrainingCenterDatabase")
        root.set(f"{{{XSI_NS}}}schemaLocation", SCHEMA_LOCATION)

        activities = _sub(root, "Activities")
        activity = _sub(activities, "Activity", Sport=map_sport(workout.type))
        _sub(activity, "Id", text=start_text)

        lap = _sub(activity, "Lap", StartTime=start_text)
        _sub(lap, "TotalTimeSeconds", text=f"{duration.total_seconds():.1f}")
        _sub(lap, "DistanceMeters", text="0.0")
        result = workout.result
        calories = (result.calories if result and result.calories else None) or DEFAULT_CALORIES
        _sub(lap, "Calories", text=str(calories))
        avg_hr = (result.avg_heart_rate if result and result.avg_heart_rate else None) or DEFAULT_AVG_HR
        max_hr = (result.max_heart_rate if result and result.max_heart_rate else None) or DEFAULT_MAX_HR
        _sub(_sub(lap, "AverageHeartRateBpm"), "Value", text=str(avg_hr))
        _sub(_sub(lap, "MaximumHeartRateBpm"), "Value", text=str(max_hr))
        _sub(lap, "Intensity", text="Active")
        _sub(lap, "TriggerMethod", text="Manual")

        track = _sub(lap, "Track")
        for when, bpm in generate_heart_rate_track(start, duration):
            point = _sub(track, "Trackpoint")
            _sub(point, "Time", text=format_timestamp(when))
            _sub(_sub(point, "HeartRateBpm"), "Value", text=str(bpm))

        _sub(lap, "Notes", text=notes)
        _sub(activity, "Notes", text=notes)

        creator = _sub(activity, "Creator", **{f"{{{XSI_NS}}}type": "Device_t"})
        _sub(creator, "Name", text=CREATOR_NAME)
        _sub(creator, "UnitId", text="0")
        _sub(creator, "ProductID", text="0")
        _version(creator)

        author = _sub(root, "Author", **{f"{{{XSI_NS}}}type": "Application_t"})
        _sub(author, "Name", text=CREATOR_NAME)
        build = _sub(author, "Build")
        _version(build)
        _sub(author, "LangID", text="en")
        _sub(author, "PartNumber", text="000-00000-00")

        return ET.ElementTree(root)

    def generate(self, workout: Workout) -> str:
        """Write one workout and return the file path."""
        path = os.path.join(self.output_dir, self.filename_for(workout))
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            tree = self.build_document(workout)
            ET.indent(tree, space="  ")
            tree.write(path, encoding="UTF-8", xml_declaration=True)
        except (OSError, ValueError, TypeError) as e:
            raise EncodingError(f"Failed to write TCX for workout {workout.id}: {e}") from e
        logger.debug(f"Wrote {path}")
        return path

    def generate_map(self, workouts: Iterable[Workout]) -> Dict[str, str]:
        """
        Write every workout, returning {workout_id: path}.

        A workout that fails to encode is logged and left out; the rest of
        the batch is still written.
        """
        files: Dict[str, str] = {}
        for workout in workouts:
            try:
                files[workout.id] = self.generate(workout)
            except EncodingError as e:
                logger.warning(f"Skipping workout {workout.id} ({workout.name}): {e}")
        return files

    def generate_all(self, workouts: Iterable[Workout]) -> List[str]:
        return list(self.generate_map(workouts).values())


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib: str) -> ET.Element:
    element = ET.SubElement(parent, f"{{{TCX_NS}}}{tag}", attrib)
    if text is not None:
        element.text = text
    return element


def _version(parent: ET.Element) -> None:
    version = _sub(parent, "Version")
    _sub(version, "VersionMajor", text="1")
    _sub(version, "VersionMinor", text="0")
    _sub(version, "BuildMajor", text="0")
    _sub(version, "BuildMinor", text="0")
