"""
Upload state machine for a single (workout, platform) pair.

    PENDING -> UPLOADING -> POLLING* -> SUCCESS | DUPLICATE | FAILED
                                     -> CANCELLED (cancellation signal)

A platform's duplicate rejection is its own idempotency mechanism, so
DUPLICATE counts as success. Clock and sleep are injectable so the polling
protocol can be driven without real time passing.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import requests

from wod_sync_api.clients.base import PlatformClient, PollResult, UploadError, UploadHandle
from wod_sync_api.models import UploadMetadata

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_WAIT = 120.0
TIMED_OUT = "timed out"


class UploadState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    POLLING = "polling"
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {
    UploadState.SUCCESS,
    UploadState.DUPLICATE,
    UploadState.FAILED,
    UploadState.CANCELLED,
}


@dataclass
class UploadOutcome:
    state: UploadState = UploadState.PENDING
    remote_id: str = ""
    error: str = ""
    history: List[UploadState] = field(default_factory=lambda: [UploadState.PENDING])

    @property
    def succeeded(self) -> bool:
        return self.state in (UploadState.SUCCESS, UploadState.DUPLICATE)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: UploadState, remote_id: str = "", error: str = "") -> "UploadOutcome":
        if self.finished:
            raise RuntimeError(f"Upload already finished as {self.state.value}")
        self.state = state
        self.history.append(state)
        if remote_id:
            self.remote_id = remote_id
        if error:
            self.error = error
        return self


class UploadTracker:
    """Drives one upload through the state machine against a platform client."""

    def __init__(
        self,
        client: PlatformClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.clock = clock
        self.sleep = sleep
        self.cancel_event = cancel_event

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def run(self, file_path: str, metadata: UploadMetadata) -> UploadOutcome:
        outcome = UploadOutcome()
        outcome.advance(UploadState.UPLOADING)
        try:
            handle = self.client.upload(file_path, metadata)
        except (UploadError, requests.RequestException) as e:
            return outcome.advance(UploadState.FAILED, error=str(e))

        outcome.advance(UploadState.POLLING)
        return self._poll(handle, outcome)

    def _poll(self, handle: UploadHandle, outcome: UploadOutcome) -> UploadOutcome:
        deadline = self.clock() + self.max_wait
        while True:
            if self._cancelled():
                return outcome.advance(UploadState.CANCELLED, error="cancelled")
            try:
                status = self.client.poll_status(handle)
            except (UploadError, requests.RequestException) as e:
                return outcome.advance(UploadState.FAILED, error=str(e))

            if status.done:
                return self._resolve(status, outcome)
            if self.clock() >= deadline:
                return outcome.advance(UploadState.FAILED, error=TIMED_OUT)
            logger.debug(f"Upload {handle.upload_id} still processing")
            self.sleep(self.poll_interval)

    @staticmethod
    def _resolve(status: PollResult, outcome: UploadOutcome) -> UploadOutcome:
        if status.duplicate:
            return outcome.advance(UploadState.DUPLICATE, remote_id=status.remote_id, error=status.error)
        if status.error:
            return outcome.advance(UploadState.FAILED, error=status.error)
        return outcome.advance(UploadState.SUCCESS, remote_id=status.remote_id)
