"""
Single-flight coordination of OAuth refresh exchanges across independent workers.

Workers share nothing but the credential store, which offers no transactions.
Mutual exclusion is approximated with a short-lived ``refresh_lock`` key that
carries no owner and expires on its own if its holder dies. The lock is
advisory; the staleness check on the failed access token is what keeps
concurrent refresh storms down to a single exchange in practice.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from quote_proxy.clients.credential_store import CredentialStore
from quote_proxy.core.config import RefreshSettings
from quote_proxy.core.errors import StoreUnavailableError, UnauthorizedError
from quote_proxy.models.credentials import (
    ACCESS_TOKEN_KEY,
    LAST_REFRESHED_KEY,
    REFRESH_LOCK_KEY,
    REFRESH_TOKEN_KEY,
    TokenGrant,
)

logger = logging.getLogger(__name__)

_LOCK_SENTINEL = "true"


class TokenExchange(Protocol):
    async def refresh_token(self, refresh_token: str) -> TokenGrant: ...


def epoch_millis() -> int:
    return int(time.time() * 1000)


class RefreshCoordinator:
    """Refresh the shared access token, at most once per expiry across all workers."""

    def __init__(
        self,
        store: CredentialStore,
        exchange: TokenExchange,
        settings: Optional[RefreshSettings] = None,
        *,
        clock: Callable[[], int] = epoch_millis,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = settings or RefreshSettings()
        self._store = store
        self._exchange = exchange
        self._lock_ttl = settings.lock_ttl_seconds
        self._lock_wait = settings.lock_wait_seconds
        self._poll_interval = settings.lock_poll_interval_seconds
        self._clock = clock
        self._sleep = sleep

    async def refresh(self, failed_credential: Optional[str] = None) -> str:
        """Return a usable access token, exchanging the refresh token if needed.

        ``failed_credential`` is the access token an upstream call just
        rejected. When the store already holds a different token, someone
        else refreshed in the meantime and that token is returned as is.
        """
        current = await self._store.get(ACCESS_TOKEN_KEY)
        if self._superseded(failed_credential, current):
            logger.info("Token already refreshed by another worker; reusing it.")
            return current  # type: ignore[return-value]

        async with self._refresh_lock() as acquired:
            if not acquired:
                return await self._await_concurrent_refresh(current)

            # Re-check under the lock: a refresh may have finished between the
            # read above and the lock write.
            if failed_credential:
                latest = await self._store.get(ACCESS_TOKEN_KEY)
                if self._superseded(failed_credential, latest):
                    logger.info("Token refreshed while acquiring the lock; reusing it.")
                    return latest  # type: ignore[return-value]

            return await self._exchange_and_store()

    @staticmethod
    def _superseded(failed_credential: Optional[str], current: Optional[str]) -> bool:
        return bool(failed_credential and current and current != failed_credential)

    async def is_refresh_in_progress(self) -> bool:
        return await self._store.get(REFRESH_LOCK_KEY) is not None

    @asynccontextmanager
    async def _refresh_lock(self) -> AsyncIterator[bool]:
        acquired = await self._try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                await self._release()

    async def _try_acquire(self) -> bool:
        if getattr(self._store, "supports_conditional_put", False):
            return await self._store.put_if_absent(
                REFRESH_LOCK_KEY, _LOCK_SENTINEL, ttl_seconds=self._lock_ttl
            )
        if await self._store.get(REFRESH_LOCK_KEY) is not None:
            return False
        await self._store.put(REFRESH_LOCK_KEY, _LOCK_SENTINEL, ttl_seconds=self._lock_ttl)
        return True

    async def _release(self) -> None:
        try:
            await self._store.delete(REFRESH_LOCK_KEY)
        except StoreUnavailableError as exc:
            logger.warning(
                "Failed to release refresh lock; it expires in %ss: %s", self._lock_ttl, exc
            )

    async def _await_concurrent_refresh(self, observed: Optional[str]) -> str:
        """Give the lock holder a bounded window, then return whatever is stored."""
        logger.info("Refresh currently in progress. Waiting...")
        waited = 0.0
        while True:
            step = min(self._poll_interval, self._lock_wait - waited)
            if step > 0:
                await self._sleep(step)
                waited += step
            latest = await self._store.get(ACCESS_TOKEN_KEY)
            if waited >= self._lock_wait or (latest and latest != observed):
                break
            if await self._store.get(REFRESH_LOCK_KEY) is None:
                break

        if not latest:
            raise UnauthorizedError(
                "No access token available after waiting for a concurrent refresh."
            )
        return latest

    async def _exchange_and_store(self) -> str:
        refresh_token = await self._store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise UnauthorizedError()

        grant = await self._exchange.refresh_token(refresh_token)

        await self._store.put(ACCESS_TOKEN_KEY, grant.access_token)
        new_refresh_token = grant.refresh_token or refresh_token
        if new_refresh_token != refresh_token:
            await self._store.put(REFRESH_TOKEN_KEY, new_refresh_token)
        await self._store.put(LAST_REFRESHED_KEY, str(self._clock()))

        logger.info(
            "Access token refreshed",
            extra={
                "token_length": len(grant.access_token),
                "refresh_token_rotated": new_refresh_token != refresh_token,
            },
        )
        return grant.access_token


__all__ = ["RefreshCoordinator", "TokenExchange", "epoch_millis"]
