"""
Sync history persisted as a single JSON document.

Layout: {workout_id: [SyncStatus, ...]}. Attempts are only ever appended.
The document is read fully at the start of a run and written fully at the
end, so only one run may use a history file at a time.
"""
import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from wod_sync_api.models import SyncStatus

logger = logging.getLogger(__name__)

ALREADY_EXISTS = "already_exists"
DUPLICATE = "duplicate"


class HistoryStore:
    """Append-only log of upload attempts per workout."""

    def __init__(
        self,
        path: str,
        entries: Optional[Dict[str, List[SyncStatus]]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.path = path
        self._entries: Dict[str, List[SyncStatus]] = entries or {}
        self._clock = clock

    @classmethod
    def load(cls, path: str, clock: Callable[[], datetime] = datetime.now) -> "HistoryStore":
        """Load the history at `path`; a missing or unreadable file gives an empty store."""
        if not os.path.exists(path):
            return cls(path, clock=clock)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read sync history {path}: {e}; starting empty")
            return cls(path, clock=clock)

        entries: Dict[str, List[SyncStatus]] = {}
        if isinstance(raw, dict):
            for workout_id, attempts in raw.items():
                if not isinstance(attempts, list):
                    continue
                entries[str(workout_id)] = _valid_attempts(path, workout_id, attempts)
        return cls(path, entries, clock=clock)

    def save(self) -> None:
        """Write the whole document, replacing the previous file atomically."""
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        payload = {
            workout_id: [s.model_dump(mode="json", exclude_none=True) for s in attempts]
            for workout_id, attempts in self._entries.items()
        }
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".history-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def record(
        self,
        workout_id: str,
        platform: str,
        success: bool,
        external_id: str = "",
        error_message: Optional[str] = None,
    ) -> SyncStatus:
        status = SyncStatus(
            workout_id=workout_id,
            platform=platform,
            external_id=external_id or "",
            synced_at=self._clock(),
            success=success,
            error_message=error_message or None,
        )
        self._entries.setdefault(workout_id, []).append(status)
        return status

    def attempts(self, workout_id: str) -> List[SyncStatus]:
        return list(self._entries.get(workout_id, []))

    def is_synced(self, workout_id: str, platform: str) -> bool:
        """True if any attempt for this workout on this platform succeeded."""
        return any(
            s.success and s.platform == platform for s in self._entries.get(workout_id, [])
        )

    def needs_sync(self, workout_id: str, platforms: Iterable[str], force: bool = False) -> List[str]:
        """Platforms among `platforms` this workout still has to be uploaded to."""
        if force:
            return list(platforms)
        return [p for p in platforms if not self.is_synced(workout_id, p)]

    def last_success(self, workout_id: str, platform: str) -> Optional[SyncStatus]:
        for status in reversed(self._entries.get(workout_id, [])):
            if status.success and status.platform == platform:
                return status
        return None

    def workout_ids(self) -> List[str]:
        return list(self._entries)

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Per-platform counts of workouts synced and attempts failed."""
        stats: Dict[str, Dict[str, int]] = {}
        for workout_id, attempts in self._entries.items():
            for platform in {s.platform for s in attempts}:
                bucket = stats.setdefault(platform, {"synced": 0, "failed_attempts": 0})
                if self.is_synced(workout_id, platform):
                    bucket["synced"] += 1
            for s in attempts:
                if not s.success:
                    stats.setdefault(s.platform, {"synced": 0, "failed_attempts": 0})
                    stats[s.platform]["failed_attempts"] += 1
        return stats

    def __len__(self) -> int:
        return len(self._entries)


def _valid_attempts(path: str, workout_id: str, attempts: list) -> List[SyncStatus]:
    """Attempts that validate; a malformed entry is logged and dropped."""
    valid = []
    for attempt in attempts:
        if not isinstance(attempt, dict):
            continue
        try:
            valid.append(SyncStatus.model_validate(attempt))
        except ValidationError as e:
            logger.warning(f"Ignoring malformed history entry for workout {workout_id} in {path}: {e}")
    return valid
