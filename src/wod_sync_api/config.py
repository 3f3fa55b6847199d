"""Configuration settings for the workout sync service."""
import os
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

SUPPORTED_PLATFORMS = ("strava", "garmin")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class Settings:
    """Application settings."""

    # Source platform
    AIMHARDER_EMAIL: Optional[str] = None
    AIMHARDER_PASSWORD: Optional[str] = None
    AIMHARDER_BOX_NAME: str = "valhallatrainingcamp"
    AIMHARDER_BOX_ID: str = "9818"
    AIMHARDER_USER_ID: Optional[str] = None
    AIMHARDER_FAMILY_ID: Optional[str] = None

    # Destination platforms
    STRAVA_CLIENT_ID: Optional[str] = None
    STRAVA_CLIENT_SECRET: Optional[str] = None
    STRAVA_REDIRECT_URI: str = "http://localhost"
    GARMIN_EMAIL: Optional[str] = None
    GARMIN_PASSWORD: Optional[str] = None

    # Storage
    DATA_DIR: str = "~/.wod-sync"
    TOKENS_FILE: str = ""
    HISTORY_FILE: str = ""
    TCX_DIR: str = ""
    GARMIN_DIR: str = ""

    # Sync
    DEFAULT_DAYS: int = 30
    PLATFORMS: List[str] = ["strava"]
    DEFAULT_DURATION_MIN: int = 60

    # Webhook
    WEBHOOK_AUTH_TOKEN: Optional[str] = None
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 8080

    LOG_LEVEL: str = "INFO"

    def __init__(self):
        self.AIMHARDER_EMAIL = os.getenv("AIMHARDER_EMAIL")
        self.AIMHARDER_PASSWORD = os.getenv("AIMHARDER_PASSWORD")
        self.AIMHARDER_BOX_NAME = os.getenv("AIMHARDER_BOX_NAME", "valhallatrainingcamp")
        self.AIMHARDER_BOX_ID = os.getenv("AIMHARDER_BOX_ID", "9818")
        self.AIMHARDER_USER_ID = os.getenv("AIMHARDER_USER_ID")
        self.AIMHARDER_FAMILY_ID = os.getenv("AIMHARDER_FAMILY_ID")

        self.STRAVA_CLIENT_ID = os.getenv("STRAVA_CLIENT_ID")
        self.STRAVA_CLIENT_SECRET = os.getenv("STRAVA_CLIENT_SECRET")
        self.STRAVA_REDIRECT_URI = os.getenv("STRAVA_REDIRECT_URI", "http://localhost")
        self.GARMIN_EMAIL = os.getenv("GARMIN_EMAIL")
        self.GARMIN_PASSWORD = os.getenv("GARMIN_PASSWORD")

        self.DATA_DIR = os.path.expanduser(os.getenv("WOD_SYNC_DATA_DIR", "~/.wod-sync"))
        self.TOKENS_FILE = os.path.expanduser(
            os.getenv("WOD_SYNC_TOKENS_FILE", os.path.join(self.DATA_DIR, "tokens.json"))
        )
        self.HISTORY_FILE = os.path.expanduser(
            os.getenv("WOD_SYNC_HISTORY_FILE", os.path.join(self.DATA_DIR, "sync_history.json"))
        )
        self.TCX_DIR = os.path.expanduser(os.getenv("WOD_SYNC_TCX_DIR", os.path.join(self.DATA_DIR, "tcx")))
        self.GARMIN_DIR = os.path.expanduser(
            os.getenv("WOD_SYNC_GARMIN_DIR", os.path.join(self.DATA_DIR, "garmin"))
        )

        self.DEFAULT_DAYS = _env_int("WOD_SYNC_DEFAULT_DAYS", 30)
        try:
            self.PLATFORMS = parse_platforms(os.getenv("WOD_SYNC_PLATFORMS", "strava"))
        except ValueError:
            self.PLATFORMS = ["strava"]
        self.DEFAULT_DURATION_MIN = _env_int("WOD_SYNC_DEFAULT_DURATION_MIN", 60)

        self.WEBHOOK_AUTH_TOKEN = os.getenv("WEBHOOK_AUTH_TOKEN") or None
        self.WEBHOOK_HOST = os.getenv("WEBHOOK_HOST", "0.0.0.0")
        self.WEBHOOK_PORT = _env_int("WEBHOOK_PORT", 8080)

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    def validate_source(self) -> List[str]:
        """Names of missing source platform variables."""
        required = {
            "AIMHARDER_EMAIL": self.AIMHARDER_EMAIL,
            "AIMHARDER_PASSWORD": self.AIMHARDER_PASSWORD,
            "AIMHARDER_USER_ID": self.AIMHARDER_USER_ID,
        }
        return [name for name, value in required.items() if not value]

    def validate_strava(self) -> List[str]:
        required = {
            "STRAVA_CLIENT_ID": self.STRAVA_CLIENT_ID,
            "STRAVA_CLIENT_SECRET": self.STRAVA_CLIENT_SECRET,
        }
        return [name for name, value in required.items() if not value]

    def validate_garmin(self) -> List[str]:
        required = {
            "GARMIN_EMAIL": self.GARMIN_EMAIL,
            "GARMIN_PASSWORD": self.GARMIN_PASSWORD,
        }
        return [name for name, value in required.items() if not value]

    def ensure_directories(self) -> None:
        for path in (self.DATA_DIR, self.TCX_DIR):
            os.makedirs(path, exist_ok=True)

    @property
    def default_duration(self) -> timedelta:
        return timedelta(minutes=self.DEFAULT_DURATION_MIN)


def parse_platforms(value: Optional[str]) -> List[str]:
    """'strava,garmin' / 'all' -> list of supported platform names, in a fixed order."""
    if not value:
        return ["strava"]
    requested = {p.strip().lower() for p in value.split(",") if p.strip()}
    if "all" in requested:
        return list(SUPPORTED_PLATFORMS)
    unknown = requested - set(SUPPORTED_PLATFORMS)
    if unknown:
        raise ValueError(f"Unknown platform(s): {', '.join(sorted(unknown))}")
    return [p for p in SUPPORTED_PLATFORMS if p in requested]


def resolve_date_range(
    days: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[datetime, datetime]:
    """
    Date window for a sync.

    With `days`, the window runs from 00:00 `days` ago to 23:59:59 today.
    Explicit `start`/`end` dates override either side.
    """
    today = today or date.today()
    if start is None:
        start = today - timedelta(days=days if days is not None else settings.DEFAULT_DAYS)
    if end is None:
        end = today
    if start > end:
        raise ValueError(f"Start date {start} is after end date {end}")
    return datetime.combine(start, time.min), datetime.combine(end, time(23, 59, 59))


settings = Settings()
