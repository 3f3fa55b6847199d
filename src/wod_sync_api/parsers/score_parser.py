"""Parsing of free-text scores and logged completion times."""
import re
from datetime import timedelta
from typing import Optional

from wod_sync_api.models import WorkoutResult

TIME_SCORE_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
ROUNDS_REPS_PATTERN = re.compile(r"(\d+)\s*\+\s*(\d+)")
ROUNDS_PATTERN = re.compile(r"^(\d+)\s*(?:rounds?|rondas?)?$")
WEIGHT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(?:kg|lbs?)?$")


def parse_score(score: str, result: WorkoutResult) -> WorkoutResult:
    """
    Fill `result` from a free-text score.

    Patterns are tried in order and the first match wins:
    1. "H:MM:SS" or "MM:SS" -> time
    2. "R + r"               -> rounds and extra reps
    3. "R" / "R rounds"      -> rounds
    4. "85" / "85kg"         -> weight

    A score matching none of them is left only as raw text.
    """
    score = (score or "").strip()
    result.score = score
    if not score:
        return result

    match = TIME_SCORE_PATTERN.match(score)
    if match:
        if match.group(3) is not None:
            hours, minutes, seconds = (int(g) for g in match.groups())
        else:
            hours = 0
            minutes, seconds = int(match.group(1)), int(match.group(2))
        result.time = timedelta(hours=hours, minutes=minutes, seconds=seconds)
        return result

    match = ROUNDS_REPS_PATTERN.search(score)
    if match:
        result.rounds = int(match.group(1))
        result.reps = int(match.group(2))
        return result

    lowered = score.lower()
    match = ROUNDS_PATTERN.match(lowered)
    if match:
        result.rounds = int(match.group(1))
        return result

    match = WEIGHT_PATTERN.match(lowered)
    if match:
        result.weight = float(match.group(1))
    return result


def parse_time_string(value: Optional[str]) -> Optional[timedelta]:
    """Parse a logged time as "MM:SS" or plain seconds."""
    if not value:
        return None
    value = value.strip()
    if ":" in value:
        parts = value.split(":")
        if len(parts) == 2:
            try:
                return timedelta(minutes=int(parts[0] or 0), seconds=int(parts[1] or 0))
            except ValueError:
                return None
    try:
        return timedelta(seconds=int(value))
    except ValueError:
        return None
