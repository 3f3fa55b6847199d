"""
Strava client: OAuth token upkeep, activity listing and file uploads.

Uploads are asynchronous on Strava's side: POST /uploads returns an upload
ID that is polled until it reports an activity ID, a duplicate or an error.
"""
import json
import logging
import os
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from wod_sync_api.clients.base import AuthError, PollResult, UploadError, UploadHandle
from wod_sync_api.clients.retry import http_retry
from wod_sync_api.models import RemoteActivity, UploadMetadata, Workout, WorkoutType

logger = logging.getLogger(__name__)

AUTH_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"
API_BASE_URL = "https://www.strava.com/api/v3"
UPLOAD_URL = f"{API_BASE_URL}/uploads"
SCOPES = "read,activity:read_all,activity:write"

# Refresh when fewer than this many seconds of validity remain
REFRESH_MARGIN_SECONDS = 5 * 60
PAGE_SIZE = 100
READY_STATUS = "Your activity is ready."

_DUPLICATE_ACTIVITY_ID = re.compile(r"activities/(\d+)")


def activity_type_for(workout_type: WorkoutType) -> str:
    return "WeightTraining" if workout_type == WorkoutType.STRENGTH else "Crossfit"


def parse_strava_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _epoch(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return int(value.timestamp())


class StravaClient:
    """Strava API v3 client backed by a JSON tokens file."""

    name = "strava"
    pacing_seconds = 0.5

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        tokens_file: str,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.tokens_file = tokens_file
        self.session = session or requests.Session()
        self.clock = clock
        self.timeout = timeout
        self.tokens: Dict[str, Any] = self._load_tokens()

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _read_token_document(self) -> Dict[str, Any]:
        if not os.path.exists(self.tokens_file):
            return {}
        try:
            with open(self.tokens_file, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read tokens file {self.tokens_file}: {e}")
            return {}
        return document if isinstance(document, dict) else {}

    def _load_tokens(self) -> Dict[str, Any]:
        tokens = self._read_token_document().get("strava")
        return tokens if isinstance(tokens, dict) else {}

    def _save_tokens(self) -> None:
        document = self._read_token_document()
        document["strava"] = self.tokens
        os.makedirs(os.path.dirname(os.path.abspath(self.tokens_file)), exist_ok=True)
        with open(self.tokens_file, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.chmod(self.tokens_file, 0o600)

    def is_authenticated(self) -> bool:
        return bool(self.tokens.get("access_token"))

    def needs_refresh(self) -> bool:
        expires_at = int(self.tokens.get("expires_at") or 0)
        return expires_at - self.clock() < REFRESH_MARGIN_SECONDS

    def authorization_url(self, redirect_uri: str, state: str = "wod-sync") -> str:
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "approval_prompt": "auto",
            "scope": SCOPES,
            "state": state,
        })
        return f"{AUTH_URL}?{query}"

    def exchange_code(self, code: str) -> None:
        """Trade an authorization code for tokens and store them."""
        self._token_request({"code": code, "grant_type": "authorization_code"})
        logger.info(f"Strava authorized for athlete {self.tokens.get('athlete_id')}")

    def refresh_access_token(self) -> None:
        refresh_token = self.tokens.get("refresh_token")
        if not refresh_token:
            raise AuthError("No Strava refresh token; re-authorize with `wod-sync auth strava`")
        self._token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})
        logger.info("Refreshed Strava access token")

    def _token_request(self, data: Dict[str, str]) -> None:
        if not self.client_id or not self.client_secret:
            raise AuthError("STRAVA_CLIENT_ID and STRAVA_CLIENT_SECRET are required")
        payload = {"client_id": self.client_id, "client_secret": self.client_secret, **data}
        try:
            resp = self.session.post(TOKEN_URL, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthError(f"Strava token request failed: {e}") from e
        if resp.status_code != 200:
            raise AuthError(f"Strava token request rejected ({resp.status_code}): {resp.text}")

        body = resp.json()
        athlete = body.get("athlete") or {}
        self.tokens = {
            "access_token": body.get("access_token", ""),
            "refresh_token": body.get("refresh_token", self.tokens.get("refresh_token", "")),
            "expires_at": int(body.get("expires_at") or 0),
            "athlete_id": athlete.get("id", self.tokens.get("athlete_id")),
        }
        self._save_tokens()

    def ensure_authenticated(self) -> None:
        if not self.is_authenticated():
            raise AuthError("Strava is not authorized; run `wod-sync auth strava`")
        if self.needs_refresh():
            self.refresh_access_token()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens.get('access_token', '')}"}

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    @http_retry
    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        if resp.status_code == 401:
            raise AuthError("Strava rejected the access token")
        resp.raise_for_status()
        return resp.json()

    def list_activities_in_range(self, start: datetime, end: datetime) -> List[RemoteActivity]:
        activities: List[RemoteActivity] = []
        page = 1
        while True:
            batch = self._get(
                f"{API_BASE_URL}/athlete/activities",
                params={
                    "after": _epoch(start),
                    "before": _epoch(end),
                    "page": page,
                    "per_page": PAGE_SIZE,
                },
            )
            if not isinstance(batch, list) or not batch:
                break
            for item in batch:
                activities.append(RemoteActivity(
                    remote_id=str(item.get("id", "")),
                    external_id=item.get("external_id") or "",
                    name=item.get("name") or "",
                    start_date=parse_strava_datetime(item.get("start_date")),
                    sport_type=item.get("sport_type") or item.get("type") or "",
                ))
            if len(batch) < PAGE_SIZE:
                break
            page += 1
        logger.debug(f"Strava returned {len(activities)} activities between {start} and {end}")
        return activities

    def find_existing(self, activities: List[RemoteActivity], workout: Workout) -> Optional[RemoteActivity]:
        """Match on the external ID we set at upload; Strava may append the file extension."""
        accepted = {workout.id, f"{workout.id}.tcx"}
        for activity in activities:
            if activity.external_id in accepted:
                return activity
        return None

    def build_metadata(self, workout: Workout) -> UploadMetadata:
        return UploadMetadata(
            name=workout.name or f"CrossFit WOD - {workout.date:%Y-%m-%d}",
            description=workout.description,
            activity_type=activity_type_for(workout.type),
            external_id=workout.id,
            start_date=workout.date,
        )

    def upload(self, file_path: str, metadata: UploadMetadata) -> UploadHandle:
        data = {
            "data_type": "tcx",
            "activity_type": metadata.activity_type,
            "name": metadata.name,
            "description": metadata.description,
            "external_id": metadata.external_id,
        }
        try:
            with open(file_path, "rb") as f:
                resp = self.session.post(
                    UPLOAD_URL,
                    data=data,
                    files={"file": (os.path.basename(file_path), f, "application/xml")},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
        except (OSError, requests.RequestException) as e:
            raise UploadError(f"Upload failed: {e}") from e

        if resp.status_code == 401:
            raise AuthError("Strava rejected the access token")
        if resp.status_code not in (200, 201):
            raise UploadError(f"Upload rejected ({resp.status_code}): {resp.text}")

        body = resp.json()
        handle = UploadHandle(upload_id=str(body.get("id", "")), raw=body)
        if body.get("error"):
            handle.immediate = self._status_from_body(body)
        return handle

    def poll_status(self, handle: UploadHandle) -> PollResult:
        if handle.immediate is not None:
            return handle.immediate
        body = self._get(f"{UPLOAD_URL}/{handle.upload_id}")
        return self._status_from_body(body)

    @staticmethod
    def _status_from_body(body: Dict[str, Any]) -> PollResult:
        error = body.get("error") or ""
        if error:
            if "duplicate" in error.lower():
                match = _DUPLICATE_ACTIVITY_ID.search(error)
                return PollResult(done=True, duplicate=True, error=error, remote_id=match.group(1) if match else "")
            return PollResult(done=True, error=error)
        activity_id = body.get("activity_id")
        if activity_id:
            return PollResult(done=True, remote_id=str(activity_id))
        if body.get("status") == READY_STATUS:
            return PollResult(done=True)
        return PollResult(done=False)

