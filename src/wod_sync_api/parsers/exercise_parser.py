"""Exercise (ejerRate) parsing."""
from typing import Any, List, Mapping, Optional, Sequence

from wod_sync_api.models import UNASSIGNED_SECTION, Exercise, ExerciseFormat
from wod_sync_api.utils import (
    FLAG_CHAIN,
    FLOAT_CHAIN,
    ID_CHAIN,
    INT_CHAIN,
    extract,
    extract_float,
    extract_int,
    extract_text,
    float_from_number,
    float_from_str,
)


def _primary_value(raw: Mapping[str, Any]) -> Optional[float]:
    """First entry of the positional `valor1` array."""
    values = raw.get("valor1")
    if not isinstance(values, list) or not values:
        return None
    first = values[0]
    result = float_from_str(first)
    if result is None:
        result = float_from_number(first)
    return result


def resolve_section_index(raw_index: Optional[int], positions: Sequence[int]) -> int:
    """Map a raw section position to a kept section index, or UNASSIGNED_SECTION."""
    if raw_index is None or raw_index < 0 or raw_index >= len(positions):
        return UNASSIGNED_SECTION
    return positions[raw_index]


def parse_exercise(raw: Mapping[str, Any], positions: Sequence[int]) -> Optional[Exercise]:
    """
    Build an Exercise from one raw entry.

    The format code decides what `valor1[0]` means: distance for distance
    format, reps otherwise. For weight+reps format `valor2` is the weight in
    kg. Fields still empty after that fall back to the loosely named
    `reps`, `weight`, `unit`, `distance` and `distanceUnit` keys.
    """
    if not isinstance(raw, Mapping):
        return None
    name = extract_text(raw, "ejerName").strip()
    if not name:
        return None

    format_code = extract(raw, "formaReg", INT_CHAIN)
    round_reps = extract_int(raw, "roundrepeat")

    reps = 0
    weight = 0.0
    weight_unit = ""
    distance = 0.0
    distance_unit = ""

    primary = _primary_value(raw)
    if primary is not None:
        if format_code == ExerciseFormat.DISTANCE:
            distance = primary
            distance_unit = "m"
        else:
            reps = int(primary)

    if format_code == ExerciseFormat.WEIGHT_REPS:
        raw_weight = extract(raw, "valor2", FLOAT_CHAIN)
        if raw_weight is not None:
            weight = raw_weight
            weight_unit = "kg"

    if reps == 0:
        reps = extract_int(raw, "reps")
    if weight == 0:
        weight = extract_float(raw, "weight")
    if not weight_unit:
        weight_unit = extract_text(raw, "unit")
    if distance == 0:
        distance = extract_float(raw, "distance")
    if not distance_unit:
        distance_unit = extract_text(raw, "distanceUnit")

    if reps == 0 and round_reps > 0:
        reps = round_reps

    return Exercise(
        id=extract(raw, "ejerId", ID_CHAIN) or "",
        name=name,
        section_index=resolve_section_index(extract(raw, "tipoWOD", INT_CHAIN), positions),
        round=extract_int(raw, "round"),
        reps_per_round=round_reps,
        reps=reps,
        weight=weight,
        weight_unit=weight_unit,
        distance=distance,
        distance_unit=distance_unit,
        calories=extract_int(raw, "cals"),
        time=extract_text(raw, "time"),
        image_url=extract_text(raw, "ejerPic"),
        video_id=extract_text(raw, "ejerVideo"),
        wod_name=extract_text(raw, "wodName").strip(),
        pr=bool(extract(raw, "pr", FLAG_CHAIN)),
        format_code=format_code,
    )


def parse_exercises(raw_exercises: Any, positions: Sequence[int]) -> List[Exercise]:
    if not isinstance(raw_exercises, list):
        return []
    exercises = []
    for raw in raw_exercises:
        exercise = parse_exercise(raw, positions)
        if exercise is not None:
            exercises.append(exercise)
    return exercises
