"""
AWS Lambda entrypoint for the scheduled (EventBridge) token refresh.

The schedule keeps the shared access token fresh so live requests rarely
observe an expired one. It goes through the same coordinator as the
request path, so it honours the shared refresh lock.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict

from quote_proxy.core.config import get_settings
from quote_proxy.core.errors import TokenLifecycleError, UnauthorizedError, UpstreamAuthError
from quote_proxy.core.logging import configure_logging
from quote_proxy.dependencies import get_token_lifecycle_service
from quote_proxy.services import TokenLifecycleService
from workers.token_refresh.models import RefreshOutcome

logger = logging.getLogger(__name__)


@lru_cache()
def _bootstrap() -> TokenLifecycleService:
    """Initialize shared singletons for the Lambda runtime."""
    settings = get_settings()
    configure_logging(settings.log_level, secrets=settings.redaction_secrets())
    return get_token_lifecycle_service()


async def refresh_once(service: TokenLifecycleService) -> RefreshOutcome:
    """Run one proactive refresh and report the outcome without raising."""
    attempted_at = datetime.now(timezone.utc).isoformat()
    logger.info("Scheduled refresh triggered")
    try:
        access_token = await service.refresh()
    except TokenLifecycleError as exc:
        if isinstance(exc, (UnauthorizedError, UpstreamAuthError)):
            logger.error("Scheduled refresh needs re-authorization: %s", exc)
        else:
            logger.exception("CRITICAL: Failed to refresh token during scheduled run")
        return {
            "refreshed": False,
            "error": type(exc).__name__,
            "detail": str(exc),
            "attempted_at": attempted_at,
        }

    logger.info("Token refreshed by schedule", extra={"token_length": len(access_token)})
    return {"refreshed": True, "error": None, "detail": None, "attempted_at": attempted_at}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda handler invoked by an EventBridge schedule rule."""
    if event.get("source") not in (None, "aws.events", "aws.scheduler"):
        logger.warning("Unexpected event source %s; refreshing anyway.", event.get("source"))

    outcome = asyncio.run(refresh_once(_bootstrap()))
    status_code = 200 if outcome["refreshed"] else 500
    return {"statusCode": status_code, **outcome}


__all__ = ["lambda_handler", "refresh_once"]
