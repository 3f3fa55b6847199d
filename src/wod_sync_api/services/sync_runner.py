"""
End-to-end sync pipeline shared by the CLI and the webhook server.

    source login -> fetch pages -> parse in window -> filter by history
    -> encode TCX -> preview (dry run) | upload via SyncOrchestrator
"""
import logging
import os
import threading
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from wod_sync_api.clients.aimharder import AimharderClient, fetch_all_activities
from wod_sync_api.clients.base import AuthError, PlatformClient, SourceClient
from wod_sync_api.clients.garmin import GarminClient
from wod_sync_api.clients.strava import StravaClient
from wod_sync_api.config import Settings, parse_platforms, resolve_date_range, settings
from wod_sync_api.models import SyncOptions, SyncSummary, Workout
from wod_sync_api.parsers import ActivityParser
from wod_sync_api.services.history_store import HistoryStore
from wod_sync_api.services.preview_service import build_previews
from wod_sync_api.services.sync_service import SyncContext, SyncOrchestrator
from wod_sync_api.services.tcx_service import TcxService

logger = logging.getLogger(__name__)


class SyncRunner:
    """Builds clients from settings and runs one sync at a time."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        source: Optional[SourceClient] = None,
        platform_factory: Optional[Callable[[str], PlatformClient]] = None,
        parser: Optional[ActivityParser] = None,
        now: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or settings
        self.source = source
        self.platform_factory = platform_factory or self.build_platform
        self.parser = parser or ActivityParser(
            box_name=self.config.AIMHARDER_BOX_NAME,
            box_id=self.config.AIMHARDER_BOX_ID,
        )
        self.now = now
        self.sleep = sleep

    def build_source(self) -> SourceClient:
        return AimharderClient(
            email=self.config.AIMHARDER_EMAIL or "",
            password=self.config.AIMHARDER_PASSWORD or "",
            user_id=self.config.AIMHARDER_USER_ID or "",
        )

    def build_platform(self, name: str) -> PlatformClient:
        if name == "strava":
            return StravaClient(
                self.config.STRAVA_CLIENT_ID,
                self.config.STRAVA_CLIENT_SECRET,
                self.config.TOKENS_FILE,
            )
        if name == "garmin":
            return GarminClient(
                self.config.GARMIN_EMAIL,
                self.config.GARMIN_PASSWORD,
                self.config.GARMIN_DIR,
            )
        raise ValueError(f"Unknown platform: {name}")

    def build_options(
        self,
        days: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        platform: Optional[str] = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> SyncOptions:
        """Options for a run; raises ValueError on a bad date range or platform name."""
        if days is None:
            days = self.config.DEFAULT_DAYS
        window_start, window_end = resolve_date_range(days, start, end, today=self.now().date())
        platforms = parse_platforms(platform) if platform else list(self.config.PLATFORMS)
        return SyncOptions(
            platforms=platforms,
            start=window_start,
            end=window_end,
            force=force,
            dry_run=dry_run,
            tcx_dir=self.config.TCX_DIR,
            history_file=self.config.HISTORY_FILE,
        )

    def fetch_workouts(
        self,
        start: datetime,
        end: datetime,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Workout]:
        """Log in to the source and parse every activity inside [start, end]."""
        source = self.source or self.build_source()
        source.login()
        records = fetch_all_activities(source, cancel_event=cancel_event, sleep=self.sleep)
        return self.parser.parse_all(records, start, end)

    def export(self, options: SyncOptions) -> Dict[str, str]:
        """Write TCX files for the window without uploading. Returns {workout_id: path}."""
        workouts = self.fetch_workouts(options.start, options.end)
        return TcxService(options.tcx_dir, self.config.default_duration).generate_map(workouts)

    def run(self, options: SyncOptions, cancel_event: Optional[threading.Event] = None) -> SyncSummary:
        cancel_event = cancel_event or threading.Event()
        summary = SyncSummary(started_at=self.now())
        logger.info(
            f"Syncing {options.start:%Y-%m-%d} to {options.end:%Y-%m-%d} "
            f"to {', '.join(options.platforms)}{' (dry run)' if options.dry_run else ''}"
        )

        try:
            workouts = self.fetch_workouts(options.start, options.end, cancel_event)
        except AuthError as e:
            logger.error(f"Source login failed: {e}")
            summary.success = False
            summary.message = f"Source authentication failed: {e}"
            return summary.finish(self.now())
        except requests.RequestException as e:
            logger.error(f"Fetching activities failed: {e}")
            summary.success = False
            summary.message = f"Failed to fetch activities: {e}"
            return summary.finish(self.now())

        summary.fetched = len(workouts)
        if not workouts:
            summary.message = "No workouts found in date range"
            return summary.finish(self.now())

        history = HistoryStore.load(options.history_file, clock=self.now)
        pending = [w for w in workouts if history.needs_sync(w.id, options.platforms, options.force)]
        already = len(workouts) - len(pending)
        summary.skipped += already * len(options.platforms)
        if not pending:
            summary.message = f"All {len(workouts)} workouts already synced"
            return summary.finish(self.now())
        logger.info(f"{len(pending)} of {len(workouts)} workouts need syncing")

        tcx_service = TcxService(options.tcx_dir, self.config.default_duration)
        files = tcx_service.generate_map(pending)

        if options.dry_run:
            summary.previews = build_previews(pending, files, tcx_service)
            summary.message = f"Dry run: {len(summary.previews)} workouts would be uploaded"
            return summary.finish(self.now())

        if cancel_event.is_set():
            summary.cancelled = True
            summary.message = "Sync cancelled"
            return summary.finish(self.now())

        context = SyncContext(
            history=history,
            platforms={name: self.platform_factory(name) for name in options.platforms},
            force=options.force,
            cancel_event=cancel_event,
            sleep=self.sleep,
            now=self.now,
        )
        try:
            return SyncOrchestrator(context).run(pending, files, summary)
        except AuthError as e:
            summary.success = False
            summary.message = f"Authentication failed: {e}"
            return summary.finish(self.now())

    def status(self) -> Dict[str, Any]:
        """History counts and which platforms are set up."""
        history = HistoryStore.load(self.config.HISTORY_FILE)
        strava = StravaClient(
            self.config.STRAVA_CLIENT_ID,
            self.config.STRAVA_CLIENT_SECRET,
            self.config.TOKENS_FILE,
        )
        return {
            "history_file": self.config.HISTORY_FILE,
            "workouts_tracked": len(history),
            "platforms": history.stats(),
            "source_configured": not self.config.validate_source(),
            "strava_authorized": strava.is_authenticated(),
            "garmin_session": os.path.isdir(self.config.GARMIN_DIR),
            "default_platforms": list(self.config.PLATFORMS),
        }
