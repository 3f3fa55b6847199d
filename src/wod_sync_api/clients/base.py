"""Interfaces of the source and destination platform clients."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from wod_sync_api.models import RemoteActivity, UploadMetadata, Workout


class AuthError(RuntimeError):
    """Raised when a platform rejects our credentials or tokens."""


class UploadError(RuntimeError):
    """Raised when a platform fails or refuses to accept an upload."""


@dataclass
class UploadHandle:
    """Opaque reference to an upload being processed by a platform."""
    upload_id: str
    # Platforms that process synchronously hand back the final status right away
    immediate: Optional["PollResult"] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PollResult:
    done: bool
    remote_id: str = ""
    duplicate: bool = False
    error: str = ""


@runtime_checkable
class SourceClient(Protocol):
    """Gym platform the workouts are read from."""

    def login(self) -> None:
        """Authenticate or raise AuthError."""
        ...

    def fetch_activities_page(self, cursor: int) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of raw activity records and the next cursor."""
        ...


@runtime_checkable
class PlatformClient(Protocol):
    """Destination platform the workouts are uploaded to."""

    name: str
    pacing_seconds: float

    def ensure_authenticated(self) -> None:
        """Authenticate or raise AuthError."""
        ...

    def list_activities_in_range(self, start: datetime, end: datetime) -> List[RemoteActivity]:
        ...

    def upload(self, file_path: str, metadata: UploadMetadata) -> UploadHandle:
        """Submit a file or raise UploadError."""
        ...

    def poll_status(self, handle: UploadHandle) -> PollResult:
        ...

    def find_existing(self, activities: List[RemoteActivity], workout: Workout) -> Optional[RemoteActivity]:
        """The remote activity that already represents `workout`, if any."""
        ...

    def build_metadata(self, workout: Workout) -> UploadMetadata:
        ...
