"""Local worker that refreshes the shared token on a fixed cadence."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from quote_proxy.core.config import get_settings
from quote_proxy.core.logging import configure_logging
from quote_proxy.dependencies import get_token_lifecycle_service
from quote_proxy.services import TokenLifecycleService
from workers.token_refresh.handler import refresh_once
from workers.token_refresh.models import RefreshOutcome

logger = logging.getLogger(__name__)


class TokenRefreshWorker:
    """Trigger proactive refreshes until stopped."""

    def __init__(
        self,
        service: TokenLifecycleService,
        interval_seconds: float = 1500.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._interval = interval_seconds
        self._sleep = sleep

    async def run_forever(self, *, max_runs: Optional[int] = None) -> None:
        runs = 0
        while True:
            await self.run_once()
            runs += 1
            if max_runs is not None and runs >= max_runs:
                return
            await self._sleep(self._interval)

    async def run_once(self) -> RefreshOutcome:
        outcome = await refresh_once(self._service)
        if not outcome["refreshed"]:
            logger.warning(
                "Scheduled refresh did not complete",
                extra={"error": outcome["error"]},
            )
        return outcome


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, secrets=settings.redaction_secrets())
    worker = TokenRefreshWorker(
        service=get_token_lifecycle_service(),
        interval_seconds=settings.refresh.schedule_interval_seconds,
    )
    await worker.run_forever()


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Token refresh worker stopped")
