"""
Sync orchestration: decide what to upload, avoid duplicates, drive uploads
and record every outcome in the history.

Work is sequential: one platform at a time, workouts in source order, with a
fixed pause between consecutive uploads to the same platform.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import requests

from wod_sync_api.clients.base import AuthError, PlatformClient, UploadError
from wod_sync_api.models import RemoteActivity, SyncSummary, Workout
from wod_sync_api.services.history_store import ALREADY_EXISTS, DUPLICATE, HistoryStore
from wod_sync_api.services.upload_tracker import (
    DEFAULT_MAX_WAIT,
    DEFAULT_POLL_INTERVAL,
    UploadState,
    UploadTracker,
)

logger = logging.getLogger(__name__)

# Remote listings are queried this far around the batch's date span
REMOTE_WINDOW_PADDING = timedelta(days=1)


@dataclass
class SyncContext:
    """Everything a sync run depends on, passed in explicitly."""
    history: HistoryStore
    platforms: Dict[str, PlatformClient]
    force: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event)
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_wait: float = DEFAULT_MAX_WAIT
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    now: Callable[[], datetime] = datetime.now


class SyncOrchestrator:
    """Uploads a batch of encoded workouts to every configured platform."""

    def __init__(self, context: SyncContext):
        self.context = context

    @property
    def cancelled(self) -> bool:
        return self.context.cancel_event.is_set()

    def authenticate(self) -> None:
        """Authenticate every platform up front; AuthError aborts the run before any upload."""
        for name, client in self.context.platforms.items():
            try:
                client.ensure_authenticated()
            except AuthError:
                logger.error(f"{name}: authentication failed")
                raise

    def pending_for(self, workouts: Sequence[Workout], platform: str) -> List[Workout]:
        """Workouts without a successful attempt on `platform`, or all of them when forced."""
        if self.context.force:
            return list(workouts)
        return [w for w in workouts if not self.context.history.is_synced(w.id, platform)]

    def fetch_existing(self, client: PlatformClient, workouts: Sequence[Workout]) -> Optional[List[RemoteActivity]]:
        """
        Remote activities around the batch's dates.

        None means the listing failed; uploads then go ahead and rely on the
        platform rejecting duplicates itself.
        """
        dates = [w.date for w in workouts]
        start = min(dates) - REMOTE_WINDOW_PADDING
        end = max(dates) + REMOTE_WINDOW_PADDING
        try:
            return client.list_activities_in_range(start, end)
        except (UploadError, AuthError, requests.RequestException) as e:
            logger.warning(f"{client.name}: could not list existing activities ({e}); relying on server-side duplicate check")
            return None

    def run(
        self,
        workouts: Sequence[Workout],
        files: Mapping[str, str],
        summary: Optional[SyncSummary] = None,
    ) -> SyncSummary:
        """
        Sync `workouts` whose encoded files are given in `files` (workout ID -> path).

        History is saved once when the batch ends, including when it is
        cancelled or interrupted by an error.
        """
        if summary is None:
            summary = SyncSummary(started_at=self.context.now())
        self.authenticate()
        try:
            for name, client in self.context.platforms.items():
                if self.cancelled:
                    summary.cancelled = True
                    break
                self._sync_platform(name, client, workouts, files, summary)
        finally:
            self.context.history.save()
        return summary.finish(self.context.now())

    def _sync_platform(
        self,
        name: str,
        client: PlatformClient,
        workouts: Sequence[Workout],
        files: Mapping[str, str],
        summary: SyncSummary,
    ) -> None:
        history = self.context.history
        pending = self.pending_for(workouts, name)
        already = len(workouts) - len(pending)
        if already:
            logger.info(f"{name}: {already} workouts already synced")
            summary.skipped += already

        candidates = []
        for workout in pending:
            if workout.id in files:
                candidates.append(workout)
            else:
                logger.warning(f"{name}: no file for workout {workout.id}, not uploading")
        if not candidates:
            return

        existing = self.fetch_existing(client, candidates)
        tracker = UploadTracker(
            client,
            poll_interval=self.context.poll_interval,
            max_wait=self.context.max_wait,
            clock=self.context.clock,
            sleep=self.context.sleep,
            cancel_event=self.context.cancel_event,
        )

        uploads = 0
        for workout in candidates:
            label = f"{workout.date:%Y-%m-%d} {workout.name}"
            if self.cancelled:
                logger.info(f"{name}: cancelled, {len(candidates)} queued workouts not all processed")
                summary.cancelled = True
                return

            if existing:
                match = client.find_existing(existing, workout)
                if match is not None:
                    history.record(workout.id, name, True, match.remote_id, ALREADY_EXISTS)
                    summary.skipped += 1
                    logger.info(f"⏭️  {name}: {label} already exists as {match.remote_id}")
                    continue

            if uploads > 0:
                self.context.sleep(client.pacing_seconds)
            uploads += 1

            logger.info(f"📤 {name}: uploading {label}")
            outcome = tracker.run(files[workout.id], client.build_metadata(workout))

            if outcome.state == UploadState.CANCELLED:
                summary.cancelled = True
                return
            if outcome.state == UploadState.SUCCESS:
                history.record(workout.id, name, True, outcome.remote_id)
                summary.uploaded += 1
                logger.info(f"✅ {name}: {label} created {outcome.remote_id}")
            elif outcome.state == UploadState.DUPLICATE:
                history.record(workout.id, name, True, outcome.remote_id, DUPLICATE)
                summary.skipped += 1
                logger.info(f"⏭️  {name}: {label} duplicate")
            else:
                history.record(workout.id, name, False, error_message=outcome.error)
                summary.errors += 1
                summary.failures[f"{workout.id}@{name}"] = outcome.error
                logger.warning(f"❌ {name}: {label} failed: {outcome.error}")
