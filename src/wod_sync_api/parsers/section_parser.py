"""
Section (TIPOWOD) parsing.

Section titles in source records are often missing or generic. The rules
here recover a usable title and time cap from the free-text notes coaches
write for each section.
"""
import re
from typing import Any, List, Mapping, Optional, Pattern, Tuple

from wod_sync_api.models import WorkoutSection
from wod_sync_api.parsers.workout_types import EMOM_TYPE_CODE, section_type
from wod_sync_api.utils import (
    FLAG_CHAIN,
    ID_CHAIN,
    clean_html_text,
    extract,
    extract_int,
    extract_text,
    int_from_number,
    nonempty_str,
)

# Time cap notations, first match wins: "TC 40'", "Time Cap: 40", "40 min cap", "cap: 40 min"
TIMECAP_PATTERNS: List[Pattern] = [
    re.compile(r"\bTC\s*[:=]?\s*(\d+)['′]?", re.IGNORECASE),
    re.compile(r"Time\s*Cap\s*[:=]?\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*min(?:utes?)?\s*cap", re.IGNORECASE),
    re.compile(r"cap\s*[:=]?\s*(\d+)\s*min", re.IGNORECASE),
]

# EMOM interval notations, first match wins
EMOM_MIN_SEC_PATTERN = re.compile(r"EVERY\s+(\d+)['’′](\d+)[\"”″]?", re.IGNORECASE)
EMOM_MIN_PATTERN = re.compile(r"EVERY\s+(\d+)['’′]\s", re.IGNORECASE)
EMOM_MIN_WORD_PATTERN = re.compile(r"EVERY\s+(\d+)\s*min", re.IGNORECASE)
EMOM_CANONICAL_PATTERN = re.compile(r"E(\d+)MO(\d+)M", re.IGNORECASE)

# Named workouts recognised in notes, checked in order
NAMED_WORKOUT_PATTERNS: List[Pattern] = [
    re.compile(r"\b(12\s+DAYS?\s+OF\s+CHRISTMAS)\b", re.IGNORECASE),
] + [
    re.compile(rf"\b({name})\b", re.IGNORECASE)
    for name in (
        "MURPH", "FRAN", "HELEN", "GRACE", "CINDY", "ANNIE", "DIANE",
        "ELIZABETH", "JACKIE", "KAREN", "MARY", "ISABEL", "NANCY",
    )
]

# Generic section labels by type code
SECTION_TYPE_LABELS = {
    1: "Strength",
    2: "AMRAP",
    3: "EMOM",
    4: "Tabata",
    5: "For Time",
    6: "Max Reps",
    7: "Max Weight",
    8: "Chipper",
    9: "RFT",
    10: "Ladder",
    11: "For Time",
    12: "YGIG",
}

# Labels that read as "<cap>' <label>" when a cap is known
CAPPED_LABEL_CODES = {2, 5, 11}

EMOM_CAP_FALLBACK_MAX = 5


def parse_timecap_from_notes(notes: str) -> int:
    """Return the first positive time cap found in `notes`, or 0."""
    for pattern in TIMECAP_PATTERNS:
        match = pattern.search(notes or "")
        if match:
            cap = int(match.group(1))
            if cap > 0:
                return cap
    return 0


def parse_emom_name(notes: str, time_cap: int) -> str:
    """
    Build a canonical interval label such as "E2MO2M" or "E1:45MO1:45M".

    Returns "" when nothing in the notes (or the cap) describes an interval.
    """
    notes = notes or ""
    match = EMOM_MIN_SEC_PATTERN.search(notes)
    if match:
        minutes, seconds = match.group(1), match.group(2)
        if seconds == "30":
            return f"E{minutes}MO{minutes}M"
        return f"E{minutes}:{seconds}MO{minutes}:{seconds}M"

    for pattern in (EMOM_MIN_PATTERN, EMOM_MIN_WORD_PATTERN):
        match = pattern.search(notes)
        if match:
            minutes = match.group(1)
            return f"E{minutes}MO{minutes}M"

    match = EMOM_CANONICAL_PATTERN.search(notes)
    if match:
        return match.group(0)

    if 0 < time_cap <= EMOM_CAP_FALLBACK_MAX:
        return f"E{time_cap}MO{time_cap}M"
    return ""


def canonical_workout_name(title: str) -> str:
    """Upper-cased named workout when `title` is exactly one, else ""."""
    for pattern in NAMED_WORKOUT_PATTERNS:
        match = pattern.fullmatch(title.strip())
        if match:
            return re.sub(r"\s+", " ", match.group(1)).upper()
    return ""


def infer_section_title(notes: str, type_code: int, time_cap: int) -> str:
    """
    Title for a section the source left untitled.

    Cascade: named workout in the notes, then a generic label for the type
    code, then "<cap> min WOD", then "WOD".
    """
    cleaned = clean_html_text(notes)
    if cleaned:
        for pattern in NAMED_WORKOUT_PATTERNS:
            match = pattern.search(cleaned)
            if match:
                return re.sub(r"\s+", " ", match.group(1)).upper()

    label = SECTION_TYPE_LABELS.get(type_code)
    if label:
        if time_cap > 0 and type_code in CAPPED_LABEL_CODES:
            return f"{time_cap}' {label}"
        return label

    if time_cap > 0:
        return f"{time_cap} min WOD"
    return "WOD"


def extract_section_time(raw: Mapping[str, Any]) -> str:
    """Logged completion time as text; "0" and 0 mean not logged."""
    value = raw.get("time")
    text = nonempty_str(value)
    if text is not None and text != "0":
        return text
    number = int_from_number(value)
    if number is not None and number > 0:
        return str(number)
    return ""


def parse_section(raw: Mapping[str, Any]) -> Optional[WorkoutSection]:
    """Build a WorkoutSection from one raw TIPOWOD entry, or None if it has no usable title."""
    if not isinstance(raw, Mapping):
        return None

    title = extract_text(raw, "title").strip()
    type_code = extract_int(raw, "type")
    notes = extract_text(raw, "notes")

    time_cap = extract_int(raw, "timecap")
    if time_cap <= 1 and notes:
        recovered = parse_timecap_from_notes(notes)
        if recovered > 0:
            time_cap = recovered

    if not title:
        title = infer_section_title(notes, type_code, time_cap)
    else:
        title = canonical_workout_name(title) or title

    if type_code == EMOM_TYPE_CODE and title.upper() == "EMOM" and notes:
        title = parse_emom_name(notes, time_cap) or title

    if not title:
        return None

    return WorkoutSection(
        id=extract(raw, "id", ID_CHAIN) or "",
        title=title,
        type=section_type(type_code, title),
        time_cap=time_cap if time_cap > 0 else None,
        time=extract_section_time(raw),
        rounds=extract_int(raw, "rondas"),
        rounds_completed=extract_int(raw, "res"),
        reps_achieved=extract_int(raw, "reps"),
        rx=bool(extract(raw, "rx", FLAG_CHAIN)),
        notes=notes,
    )


def parse_sections(raw_sections: Any) -> Tuple[List[WorkoutSection], List[int]]:
    """
    Parse the raw sections array.

    Returns the kept sections and, for each raw position, the index of the
    kept section it became (-1 if dropped). Exercises reference sections by
    raw position, so callers need the mapping to re-point them.
    """
    sections: List[WorkoutSection] = []
    positions: List[int] = []
    if not isinstance(raw_sections, list):
        return sections, positions
    for raw in raw_sections:
        section = parse_section(raw)
        if section is None:
            positions.append(-1)
            continue
        positions.append(len(sections))
        sections.append(section)
    return sections, positions
