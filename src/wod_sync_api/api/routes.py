"""Webhook routes: trigger a sync, report status, health check."""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from wod_sync_api.auth import verify_webhook_token
from wod_sync_api.models import SyncSummary
from wod_sync_api.services.sync_runner import SyncRunner

logger = logging.getLogger(__name__)

router = APIRouter()

# Only one sync may run per process; the history file is not safe to share
_sync_lock = threading.Lock()


class SyncState:
    """Last sync outcome kept in memory for /status."""

    def __init__(self):
        self.last_summary: Optional[SyncSummary] = None
        self.last_run: Optional[datetime] = None

    def update(self, summary: SyncSummary) -> None:
        self.last_summary = summary
        self.last_run = summary.completed_at or datetime.now()

    def reset(self) -> None:
        self.last_summary = None
        self.last_run = None


state = SyncState()


def get_sync_runner() -> SyncRunner:
    return SyncRunner()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/")
@router.get("/health")
def health():
    """Health check endpoint."""
    return {"ok": True, "service": "wod-sync"}


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@router.post("/sync", dependencies=[Depends(verify_webhook_token)])
@router.post("/api/sync", dependencies=[Depends(verify_webhook_token)])
def trigger_sync(
    days: int = Query(1, ge=1, le=365),
    platform: Optional[str] = Query(None),
    force: bool = Query(False),
    runner: SyncRunner = Depends(get_sync_runner),
):
    """
    Run a sync for the last `days` days and return its summary.

    Answers 409 while another sync is running, 500 when the sync finished
    unsuccessfully.
    """
    try:
        options = runner.build_options(days=days, platform=platform, force=force)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not _sync_lock.acquire(blocking=False):
        return JSONResponse(
            status_code=409,
            content={
                "error": "sync already in progress",
                "message": "Another sync is running; try again when it finishes",
            },
        )
    try:
        logger.info(f"Webhook sync requested: days={days} platforms={options.platforms}")
        summary = runner.run(options)
        state.update(summary)
    finally:
        _sync_lock.release()

    return JSONResponse(
        status_code=200 if summary.success else 500,
        content=summary.model_dump(mode="json"),
    )


@router.get("/status", dependencies=[Depends(verify_webhook_token)])
@router.get("/api/status", dependencies=[Depends(verify_webhook_token)])
def sync_status() -> Dict[str, Any]:
    """Whether a sync is running, and the last run's summary."""
    return {
        "running": _sync_lock.locked(),
        "last_run": state.last_run.isoformat() if state.last_run else None,
        "last_summary": state.last_summary.model_dump(mode="json") if state.last_summary else None,
    }
