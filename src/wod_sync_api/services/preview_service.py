"""Dry-run previews: what would be uploaded, without contacting any platform."""
from typing import Dict, Iterable, List, Mapping

from wod_sync_api.models import ActivityPreview, Workout, WorkoutType
from wod_sync_api.services.tcx_service import TcxService
from wod_sync_api.utils import format_elapsed

DISPLAY_TYPES: Dict[WorkoutType, str] = {
    WorkoutType.STRENGTH: "Weight Training",
    WorkoutType.AMRAP: "CrossFit (AMRAP)",
    WorkoutType.FOR_TIME: "CrossFit (For Time)",
    WorkoutType.EMOM: "CrossFit (EMOM)",
    WorkoutType.TABATA: "CrossFit (Tabata)",
    WorkoutType.SKILL: "CrossFit (Skill)",
    WorkoutType.HERO: "CrossFit (Hero WOD)",
    WorkoutType.BENCHMARK: "CrossFit (Benchmark)",
    WorkoutType.OPEN: "CrossFit (Open)",
}


def display_type(workout_type: WorkoutType) -> str:
    return DISPLAY_TYPES.get(workout_type, "CrossFit")


def build_preview(workout: Workout, tcx_file: str, tcx_service: TcxService) -> ActivityPreview:
    duration = tcx_service.effective_duration(workout)
    return ActivityPreview(
        name=workout.name or f"CrossFit WOD - {workout.date:%Y-%m-%d}",
        type=display_type(workout.type),
        start_date=tcx_service.start_time(workout),
        external_id=workout.id,
        tcx_file=tcx_file,
        elapsed_time=format_elapsed(int(duration.total_seconds())),
        description=workout.description,
    )


def build_previews(
    workouts: Iterable[Workout],
    files: Mapping[str, str],
    tcx_service: TcxService,
) -> List[ActivityPreview]:
    """Previews for the workouts that have an encoded file."""
    return [
        build_preview(workout, files[workout.id], tcx_service)
        for workout in workouts
        if workout.id in files
    ]
