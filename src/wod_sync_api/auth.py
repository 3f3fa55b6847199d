"""
Webhook authentication.

When WEBHOOK_AUTH_TOKEN is set, protected routes require it in the
X-Auth-Token header or the `token` query parameter.
"""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Query

from wod_sync_api.config import settings

logger = logging.getLogger(__name__)


def token_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """True when no token is configured, or `provided` equals it."""
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def verify_webhook_token(
    x_auth_token: Optional[str] = Header(None, alias="X-Auth-Token"),
    token: Optional[str] = Query(None),
) -> None:
    """
    FastAPI dependency guarding the sync and status routes.

    Usage:
        @router.post("/sync", dependencies=[Depends(verify_webhook_token)])
    """
    if token_matches(x_auth_token or token, settings.WEBHOOK_AUTH_TOKEN):
        return
    logger.warning("Rejected webhook request with missing or invalid token")
    raise HTTPException(status_code=401, detail="Invalid or missing auth token")
