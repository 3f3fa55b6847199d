"""
Garmin Connect client built on garth.

Garmin processes uploads synchronously, so the upload response already
carries the final result and polling returns it unchanged.
"""
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import garth
from garth.exc import GarthException, GarthHTTPError

from wod_sync_api.clients.base import AuthError, PollResult, UploadError, UploadHandle
from wod_sync_api.clients.retry import retry_sync_call
from wod_sync_api.models import RemoteActivity, UploadMetadata, Workout, WorkoutType
from wod_sync_api.services.tcx_service import workout_start_time

logger = logging.getLogger(__name__)

ACTIVITY_SEARCH_PATH = "/activitylist-service/activities/search/activities"
UPLOAD_PATH = "/upload-service/upload"
DUPLICATE_MARKERS = ("duplicate", "already exists")
PAGE_SIZE = 100
START_TIME_TOLERANCE = timedelta(minutes=1)


def _is_duplicate(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in DUPLICATE_MARKERS)


def parse_garmin_datetime(value: Optional[str]) -> Optional[datetime]:
    """Garmin local start times look like '2024-03-01 18:30:00'."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


class GarminClient:
    """Garmin Connect client with a garth session stored on disk."""

    name = "garmin"
    pacing_seconds = 1.0

    def __init__(
        self,
        email: Optional[str],
        password: Optional[str],
        token_dir: str,
        client: Optional[garth.Client] = None,
    ):
        self.email = email
        self.password = password
        self.token_dir = os.path.expanduser(token_dir)
        self.client = client or garth.Client()
        self._authenticated = False

    def resume(self) -> bool:
        """Resume a saved session. Returns False if there is none or it expired."""
        if not os.path.isdir(self.token_dir):
            return False
        try:
            self.client.load(self.token_dir)
            # Touch the profile to check the session is still valid
            _ = self.client.username
        except (GarthException, OSError, ValueError, AttributeError) as e:
            logger.warning(f"Saved Garmin session expired or invalid: {e}")
            return False
        return True

    def login(self) -> None:
        if not self.email or not self.password:
            raise AuthError("GARMIN_EMAIL and GARMIN_PASSWORD are required to log in to Garmin Connect")
        try:
            self.client.login(self.email, self.password)
        except (GarthException, OSError, ValueError) as e:
            raise AuthError(f"Garmin Connect login failed: {e}") from e
        os.makedirs(self.token_dir, exist_ok=True)
        self.client.dump(self.token_dir)
        logger.info("Garmin Connect session saved")

    def ensure_authenticated(self) -> None:
        if self._authenticated:
            return
        if not self.resume():
            self.login()
        self._authenticated = True

    def list_activities_in_range(self, start: datetime, end: datetime) -> List[RemoteActivity]:
        activities: List[RemoteActivity] = []
        offset = 0
        while True:
            try:
                batch = retry_sync_call(
                    self.client.connectapi,
                    ACTIVITY_SEARCH_PATH,
                    params={
                        "startDate": f"{start:%Y-%m-%d}",
                        "endDate": f"{end:%Y-%m-%d}",
                        "start": offset,
                        "limit": PAGE_SIZE,
                    },
                )
            except GarthHTTPError as e:
                raise UploadError(f"Garmin activity listing failed: {e}") from e
            if not isinstance(batch, list) or not batch:
                break
            for item in batch:
                activity_type = item.get("activityType") or {}
                activities.append(RemoteActivity(
                    remote_id=str(item.get("activityId", "")),
                    name=item.get("activityName") or "",
                    start_date=parse_garmin_datetime(item.get("startTimeLocal")),
                    sport_type=activity_type.get("typeKey", ""),
                ))
            if len(batch) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return activities

    def find_existing(self, activities: List[RemoteActivity], workout: Workout) -> Optional[RemoteActivity]:
        """
        Garmin listings have no external ID.

        Uploaded activities keep the TCX start time as `startTimeLocal` but
        get a name chosen by Garmin, so the start time is the primary key.
        A same-day activity carrying the workout name also counts.
        """
        start = workout_start_time(workout)
        day = start.date()
        for activity in activities:
            if activity.start_date is None:
                continue
            if abs(activity.start_date - start) <= START_TIME_TOLERANCE:
                return activity
            if activity.start_date.date() == day and activity.name and activity.name == workout.name:
                return activity
        return None

    def build_metadata(self, workout: Workout) -> UploadMetadata:
        return UploadMetadata(
            name=workout.name or f"CrossFit WOD - {workout.date:%Y-%m-%d}",
            description=workout.description,
            activity_type="strength_training" if workout.type == WorkoutType.STRENGTH else "fitness_equipment",
            external_id=workout.id,
            start_date=workout.date,
        )

    def upload(self, file_path: str, metadata: UploadMetadata) -> UploadHandle:
        try:
            with open(file_path, "rb") as f:
                body = self.client.upload(f, path=UPLOAD_PATH)
        except GarthHTTPError as e:
            message = str(e)
            if "409" in message or _is_duplicate(message):
                return UploadHandle(
                    upload_id="",
                    immediate=PollResult(done=True, duplicate=True, error="duplicate"),
                )
            raise UploadError(f"Garmin upload failed: {e}") from e
        except (GarthException, OSError) as e:
            raise UploadError(f"Garmin upload failed: {e}") from e

        body = body or {}
        result = self._result_from_body(body)
        return UploadHandle(upload_id=str(self._upload_id(body)), immediate=result, raw=body)

    def poll_status(self, handle: UploadHandle) -> PollResult:
        if handle.immediate is not None:
            return handle.immediate
        return PollResult(done=True, error="no upload result")

    @staticmethod
    def _upload_id(body: Dict[str, Any]) -> Any:
        return (body.get("detailedImportResult") or {}).get("uploadId", "")

    @staticmethod
    def _result_from_body(body: Dict[str, Any]) -> PollResult:
        result = body.get("detailedImportResult") or {}
        for success in result.get("successes") or []:
            internal_id = success.get("internalId")
            if internal_id:
                return PollResult(done=True, remote_id=str(internal_id))
        for failure in result.get("failures") or []:
            for message in failure.get("messages") or []:
                content = message.get("content", "")
                if _is_duplicate(content):
                    return PollResult(done=True, duplicate=True, error=content)
                if content:
                    return PollResult(done=True, error=content)
        # Accepted but not yet processed: the upload ID stands in for the activity
        upload_id = result.get("uploadId")
        if upload_id:
            return PollResult(done=True, remote_id=str(upload_id))
        return PollResult(done=True, error="upload produced no activity")

