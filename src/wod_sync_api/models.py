"""Data models for workout sync."""
from datetime import datetime, timedelta
from enum import Enum
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

# Exercise.section_index value for exercises not attached to any section
UNASSIGNED_SECTION = -1


class WorkoutType(str, Enum):
    """Workout type tag shared by workouts and their sections."""
    FOR_TIME = "ForTime"
    AMRAP = "AMRAP"
    EMOM = "EMOM"
    TABATA = "Tabata"
    STRENGTH = "Strength"
    SKILL = "Skill"
    HERO = "Hero"
    BENCHMARK = "Benchmark"
    OPEN = "Open"
    GENERIC = "WOD"


class ExerciseFormat(int, Enum):
    """Source format code telling which value is an exercise's primary quantity."""
    DISTANCE = 2
    COUNT = 3
    WEIGHT_REPS = 4


class Scaling(str, Enum):
    """How the athlete completed the workout. Exactly one applies."""
    RX = "rx"
    SCALED = "scaled"
    RX_PLUS = "rx_plus"


class Exercise(BaseModel):
    """Represents a single movement within a workout section."""
    id: str = ""
    name: str
    section_index: int = UNASSIGNED_SECTION
    round: int = 0
    reps_per_round: int = 0
    reps: int = 0
    weight: float = 0.0
    weight_unit: str = ""
    distance: float = 0.0
    distance_unit: str = ""
    calories: int = 0
    time: str = ""
    image_url: str = ""
    video_id: str = ""
    wod_name: str = ""
    pr: bool = False
    format_code: Optional[int] = None

    class Config:
        extra = "ignore"

    @property
    def is_assigned(self) -> bool:
        return self.section_index != UNASSIGNED_SECTION

    @property
    def primary_quantity(self) -> str:
        """
        Name of the field that carries this exercise's main quantity.

        Distance-format exercises are measured in distance; everything else is
        counted in reps-per-round when the source prescribed one, else in reps.
        """
        if self.format_code == ExerciseFormat.DISTANCE:
            return "distance"
        if self.reps_per_round > 0:
            return "reps_per_round"
        return "reps"


class WorkoutSection(BaseModel):
    """One phase of a workout, e.g. an EMOM block or a strength part."""
    id: str = ""
    title: str
    type: WorkoutType = WorkoutType.GENERIC
    time_cap: Optional[int] = None  # minutes
    time: str = ""  # raw completion time as logged
    rounds: int = 0
    rounds_completed: int = 0
    reps_achieved: int = 0  # extra reps beyond full rounds
    rx: bool = False
    notes: str = ""

    class Config:
        extra = "ignore"


class WorkoutResult(BaseModel):
    """Athlete's overall outcome for a workout."""
    time: Optional[timedelta] = None
    rounds: int = 0
    reps: int = 0
    weight: float = 0.0
    score: str = ""
    scaling: Scaling = Scaling.RX
    notes: str = ""
    avg_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    calories: Optional[int] = None

    class Config:
        extra = "ignore"

    @property
    def scaled(self) -> bool:
        return self.scaling == Scaling.SCALED

    @property
    def rx_plus(self) -> bool:
        return self.scaling == Scaling.RX_PLUS


class Workout(BaseModel):
    """
    One logged training session.

    `id` is the source platform's activity ID. It is used as the dedup key in
    the sync history and as the external ID sent to destination platforms, so
    it must stay stable across runs.
    """
    id: str
    date: datetime
    name: str = ""
    description: str = ""
    type: WorkoutType = WorkoutType.GENERIC
    duration: Optional[timedelta] = None
    class_time: str = ""  # "HH:MM" or "HHMM" when the class schedule is known
    result: Optional[WorkoutResult] = None
    box_name: str = ""
    box_id: str = ""
    sections: List[WorkoutSection] = Field(default_factory=list)
    exercises: List[Exercise] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    def section_exercises(self, index: int) -> List[Exercise]:
        """Exercises attached to the section at `index`, in source order."""
        return [ex for ex in self.exercises if ex.section_index == index]

    def unassigned_exercises(self) -> List[Exercise]:
        return [ex for ex in self.exercises if not ex.is_assigned]


class SyncStatus(BaseModel):
    """One recorded upload attempt of a workout to a platform."""
    workout_id: str
    platform: str
    external_id: str = ""
    synced_at: datetime
    success: bool
    error_message: Optional[str] = None

    class Config:
        extra = "ignore"


class RemoteActivity(BaseModel):
    """An activity already present on a destination platform."""
    remote_id: str
    external_id: str = ""
    name: str = ""
    start_date: Optional[datetime] = None
    sport_type: str = ""


class UploadMetadata(BaseModel):
    """Minimal metadata sent alongside an encoded file."""
    name: str
    description: str = ""
    activity_type: str
    external_id: str
    start_date: datetime


class ActivityPreview(BaseModel):
    """What a dry run would have uploaded for one workout."""
    name: str
    type: str
    start_date: datetime
    external_id: str
    data_type: str = "tcx"
    tcx_file: str
    elapsed_time: str
    description: str = ""


class SyncOptions(BaseModel):
    """Parameters of one sync run."""
    platforms: List[str] = Field(default_factory=lambda: ["strava"])
    start: datetime
    end: datetime
    force: bool = False
    dry_run: bool = False
    tcx_dir: str
    history_file: str


class SyncSummary(BaseModel):
    """Aggregated outcome of a sync run."""
    success: bool = True
    message: str = ""
    fetched: int = 0
    uploaded: int = 0
    skipped: int = 0
    errors: int = 0
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: str = ""
    previews: List[ActivityPreview] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    def finish(self, completed_at: datetime) -> "SyncSummary":
        """Stamp completion time and derive the message and success flag."""
        self.completed_at = completed_at
        if self.started_at is not None:
            self.duration = str(completed_at - self.started_at)
        if not self.message:
            self.message = (
                f"Uploaded {self.uploaded}, skipped {self.skipped}, errors {self.errors}"
            )
        if self.errors > 0:
            self.success = False
        return self
