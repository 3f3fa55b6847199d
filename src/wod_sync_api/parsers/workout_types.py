"""Workout type detection from source type codes and workout names."""
import re
from typing import Dict, List, Optional, Pattern, Tuple

from wod_sync_api.models import WorkoutType

# Section type codes as sent by the source platform
SECTION_TYPE_CODES: Dict[int, WorkoutType] = {
    1: WorkoutType.FOR_TIME,
    2: WorkoutType.AMRAP,
    3: WorkoutType.EMOM,
    4: WorkoutType.TABATA,
    5: WorkoutType.STRENGTH,
    6: WorkoutType.SKILL,
}

EMOM_TYPE_CODE = 3

HERO_WODS: List[str] = [
    "MURPH", "DT", "MICHAEL", "RYAN", "RANDY", "JOSH", "CHAD", "TOMMY V",
    "NICK", "NATE", "JARED", "BADGER", "JASON", "WHITTEN", "JT",
]

BENCHMARK_WODS: List[str] = [
    "FRAN", "GRACE", "HELEN", "DIANE", "ELIZABETH", "ANNIE", "ISABEL", "KAREN",
    "NANCY", "CINDY", "JACKIE", "MARY", "EVA", "KELLY", "LINDA", "AMANDA",
]


def _words(names: List[str]) -> Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(n) for n in names) + r")\b")


# Keyword rules, first match wins. Matched against the upper-cased name.
_KEYWORD_RULES: List[Tuple[Pattern, WorkoutType]] = [
    (re.compile(r"AMRAP"), WorkoutType.AMRAP),
    (re.compile(r"FOR\s?TIME"), WorkoutType.FOR_TIME),
    (re.compile(r"EMOM|E\d+MO\d+M"), WorkoutType.EMOM),
    (re.compile(r"TABATA"), WorkoutType.TABATA),
    (re.compile(r"STRENGTH|FUERZA"), WorkoutType.STRENGTH),
    (re.compile(r"SKILL|TECNICA|TÉCNICA"), WorkoutType.SKILL),
    (re.compile(r"\bOPEN\b"), WorkoutType.OPEN),
    (_words(HERO_WODS), WorkoutType.HERO),
    (_words(BENCHMARK_WODS), WorkoutType.BENCHMARK),
]


def detect_workout_type(name: Optional[str]) -> WorkoutType:
    """Detect a workout type from keywords and named workouts in `name`."""
    upper = (name or "").upper()
    for pattern, workout_type in _KEYWORD_RULES:
        if pattern.search(upper):
            return workout_type
    return WorkoutType.GENERIC


def section_type(code: int, title: str) -> WorkoutType:
    """Map a section type code, falling back to name detection for unknown codes."""
    if code in SECTION_TYPE_CODES:
        return SECTION_TYPE_CODES[code]
    return detect_workout_type(title)
