"""
Activity parser: raw source activity records -> canonical Workout.

Records are nested, loosely typed JSON objects as returned by the source
platform's activity timeline. Incomplete records (no ID, no usable date)
are dropped; a bad record never stops the rest of a page from parsing.
"""
import logging
import re
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from wod_sync_api.models import Scaling, Workout, WorkoutResult
from wod_sync_api.parsers.exercise_parser import parse_exercises
from wod_sync_api.parsers.score_parser import parse_score, parse_time_string
from wod_sync_api.parsers.section_parser import parse_sections
from wod_sync_api.parsers.workout_types import detect_workout_type
from wod_sync_api.services.description_formatter import DescriptionFormatter
from wod_sync_api.utils import FLAG_CHAIN, ID_CHAIN, extract, extract_first, extract_text

logger = logging.getLogger(__name__)

# "when": YYYYMMDD[HHMMSS]
WHEN_PATTERN = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:(\d{2})(\d{2})(\d{2}))?")
# "day": MM-DD-YYYY (month first)
DAY_PATTERN = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")

MAX_NAME_EXERCISES = 3


class ParseError(RuntimeError):
    """Raised when a source activity record is missing required data."""


def parse_activity_timestamp(raw: Mapping[str, Any]) -> datetime:
    """
    Timestamp of a record.

    Prefers the compact `when` field (date and time of day). Falls back to
    the date-only `day` field, read as month-first.
    """
    when = extract(raw, "when", ID_CHAIN)
    if when:
        match = WHEN_PATTERN.match(when)
        if match:
            year, month, day, hh, mm, ss = match.groups()
            try:
                return datetime(
                    int(year), int(month), int(day),
                    int(hh or 0), int(mm or 0), int(ss or 0),
                )
            except ValueError as e:
                raise ParseError(f"invalid 'when' value {when!r}") from e

    day_text = extract_text(raw, "day").strip()
    match = DAY_PATTERN.match(day_text)
    if match:
        month, day, year = match.groups()
        try:
            return datetime(int(year), int(month), int(day))
        except ValueError as e:
            raise ParseError(f"invalid 'day' value {day_text!r}") from e

    raise ParseError("no usable date")


def in_window(when: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Compare by calendar date so a window end of 23:59:59 includes the whole day."""
    day = when.date()
    if start is not None and day < start.date():
        return False
    if end is not None and day > end.date():
        return False
    return True


class ActivityParser:
    """Converts raw activity records into Workouts."""

    def __init__(self, box_name: str = "", box_id: str = ""):
        self.box_name = box_name
        self.box_id = box_id

    def parse(
        self,
        raw: Mapping[str, Any],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Optional[Workout]:
        """Parse one record. Returns None if it is incomplete or outside [start, end]."""
        try:
            workout = self.parse_record(raw)
        except ParseError as e:
            logger.debug(f"Dropping activity record: {e}")
            return None
        if not in_window(workout.date, start, end):
            return None
        return workout

    def parse_all(
        self,
        records: Iterable[Mapping[str, Any]],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Workout]:
        workouts = []
        for raw in records:
            workout = self.parse(raw, start, end)
            if workout is not None:
                workouts.append(workout)
        logger.info(f"Parsed {len(workouts)} workouts in range")
        return workouts

    def parse_record(self, raw: Mapping[str, Any]) -> Workout:
        if not isinstance(raw, Mapping):
            raise ParseError("record is not an object")

        workout_id = extract(raw, "id", ID_CHAIN)
        if not workout_id:
            raise ParseError("missing id")
        when = parse_activity_timestamp(raw)

        sections, positions = parse_sections(raw.get("TIPOWODs"))
        exercises = parse_exercises(raw.get("ejerRate"), positions)

        name = " + ".join(s.title for s in sections if s.title)
        for exercise in exercises:
            if exercise.wod_name and (not name or name == exercise.name):
                name = exercise.wod_name
        if not name:
            name = ", ".join(self._unique_names(exercises)[:MAX_NAME_EXERCISES])

        workout = Workout(
            id=workout_id,
            date=when,
            name=name,
            type=detect_workout_type(name),
            box_name=extract_text(raw, "box") or self.box_name,
            box_id=self.box_id,
            class_time=extract_text(raw, "classTime"),
            sections=sections,
            exercises=exercises,
            result=self._build_result(raw, sections),
        )
        workout.description = DescriptionFormatter.format_description(workout)
        return workout

    @staticmethod
    def _unique_names(exercises) -> List[str]:
        seen = []
        for exercise in exercises:
            if exercise.name not in seen:
                seen.append(exercise.name)
        return seen

    @staticmethod
    def _build_result(raw: Mapping[str, Any], sections) -> WorkoutResult:
        result = WorkoutResult()
        score = extract_text(raw, "score")
        if score:
            parse_score(score, result)

        if result.time is None:
            first_time = next((s.time for s in sections if s.time), "")
            result.time = parse_time_string(first_time)

        if extract_first(raw, ("rxplus", "rxPlus"), FLAG_CHAIN):
            result.scaling = Scaling.RX_PLUS
        elif any(s.rx for s in sections):
            result.scaling = Scaling.RX
        else:
            result.scaling = Scaling.SCALED

        result.notes = extract_text(raw, "comments")
        return result

