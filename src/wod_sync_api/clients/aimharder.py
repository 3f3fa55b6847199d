"""
AimHarder client: login and activity timeline paging.

The activity timeline is the endpoint the athlete profile page uses to list
logged workouts. It is paged with a `loadAfter` watermark that the previous
page returns as `lastLoaded`.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from wod_sync_api.clients.base import AuthError, SourceClient
from wod_sync_api.clients.retry import http_retry

logger = logging.getLogger(__name__)

BASE_URL = "https://aimharder.com"
LOGIN_URL = "https://login.aimharder.com"
ACTIVITY_URL = f"{BASE_URL}/api/activity"
AUTH_COOKIE = "amhrdrauth"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

INVALID_CREDENTIAL_MARKERS = (
    "datos incorrectos",
    "email o contraseña incorrectos",
    "credenciales incorrectas",
    "invalid email",
    "invalid password",
)

PAGE_PAUSE_SECONDS = 0.5


class AimharderClient:
    """Session-based client for the AimHarder web API."""

    def __init__(
        self,
        email: str,
        password: str,
        user_id: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.email = email
        self.password = password
        self.user_id = user_id
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
        })
        self.timeout = timeout
        self.logged_in = False

    def _has_auth_cookie(self) -> bool:
        return any(cookie.name == AUTH_COOKIE for cookie in self.session.cookies)

    def login(self) -> None:
        """Log in with email and password. Raises AuthError on failure."""
        if not self.email or not self.password:
            raise AuthError("AimHarder email and password are required")
        if not self.user_id:
            raise AuthError("AimHarder user ID is not configured (AIMHARDER_USER_ID)")

        try:
            self.session.get(BASE_URL, timeout=self.timeout)
            self.session.get(LOGIN_URL, headers={"Referer": BASE_URL}, timeout=self.timeout)
            resp = self.session.post(
                LOGIN_URL,
                data={
                    "mail": self.email,
                    "pw": self.password,
                    "loginfingerprint": "0",
                    "loginiframe": "0",
                    "login": "Iniciar sesión",
                },
                headers={"Referer": LOGIN_URL, "Origin": LOGIN_URL},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"AimHarder login request failed: {e}") from e

        body = (resp.text or "").lower()
        if any(marker in body for marker in INVALID_CREDENTIAL_MARKERS):
            raise AuthError("AimHarder rejected the credentials")

        if not self._has_auth_cookie():
            try:
                self.session.get(f"{BASE_URL}/home", headers={"Referer": LOGIN_URL}, timeout=self.timeout)
            except requests.RequestException as e:
                raise AuthError(f"AimHarder login verification failed: {e}") from e
        if not self._has_auth_cookie():
            raise AuthError(f"Authentication failed: {AUTH_COOKIE} cookie not received")

        self.logged_in = True
        logger.info("Logged in to AimHarder")

    @http_retry
    def _get_page(self, params: Dict[str, Any]) -> requests.Response:
        resp = self.session.get(
            ACTIVITY_URL,
            params=params,
            headers={
                "Accept": "application/json, text/javascript, */*; q=0.01",
                "X-Requested-With": "XMLHttpRequest",
                "Referer": BASE_URL,
            },
            timeout=self.timeout,
        )
        if resp.status_code >= 500 or resp.status_code == 429:
            resp.raise_for_status()
        return resp

    def fetch_activities_page(self, cursor: int) -> Tuple[List[Dict[str, Any]], int]:
        """
        Fetch one timeline page.

        Cursor 0 asks for the newest page. Returns the raw records and the
        page's `lastLoaded` watermark (0 when the page is empty or invalid).
        """
        if not self.logged_in:
            raise AuthError("Not logged in to AimHarder")

        params: Dict[str, Any] = {
            "timeLineFormat": 0 if cursor == 0 else 2,
            "timeLineContent": 2,
            "userID": self.user_id,
            "_": int(time.time() * 1000),
        }
        if cursor:
            params["loadAfter"] = cursor

        resp = self._get_page(params)
        if resp.status_code in (401, 403):
            raise AuthError(f"AimHarder session rejected ({resp.status_code})")
        if resp.status_code != 200:
            logger.warning(f"Activity page returned HTTP {resp.status_code}")
            return [], 0
        return parse_activity_page(resp)


def parse_activity_page(resp: requests.Response) -> Tuple[List[Dict[str, Any]], int]:
    try:
        payload = resp.json()
    except ValueError:
        logger.warning("Activity page is not valid JSON")
        return [], 0
    if not isinstance(payload, dict):
        return [], 0
    elements = [e for e in payload.get("elements") or [] if isinstance(e, dict)]
    try:
        last_loaded = int(payload.get("lastLoaded") or 0)
    except (TypeError, ValueError):
        last_loaded = 0
    return elements, last_loaded


def fetch_all_activities(
    client: SourceClient,
    cancel_event: Optional[threading.Event] = None,
    pause_seconds: float = PAGE_PAUSE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Dict[str, Any]]:
    """
    Page through the whole activity timeline.

    Stops on an empty page, or when the returned cursor is 0 or does not
    advance, so a misbehaving source cannot keep the loop going.
    """
    activities: List[Dict[str, Any]] = []
    cursor = 0
    while True:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Activity fetch cancelled")
            break

        items, next_cursor = client.fetch_activities_page(cursor)
        if not items:
            break
        activities.extend(items)
        logger.debug(f"Loaded {len(activities)} activities")

        if next_cursor == 0 or next_cursor == cursor:
            break
        cursor = next_cursor
        sleep(pause_seconds)

    logger.info(f"Fetched {len(activities)} activities")
    return activities
