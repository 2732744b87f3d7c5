"""
Facade over the shared Schwab credential pair.

This is the surface the HTTP routes and the scheduled refresh worker use:
token retrieval, authenticated calls, proactive refresh, status, the initial
grant from the authorization callback, and the re-authorization reset.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from quote_proxy.clients.credential_store import CredentialStore
from quote_proxy.models.credentials import (
    ACCESS_TOKEN_KEY,
    CREDENTIAL_KEYS,
    LAST_REFRESHED_KEY,
    REFRESH_TOKEN_KEY,
    TokenGrant,
    TokenStatus,
)
from quote_proxy.models.upstream import UpstreamRequest
from quote_proxy.services.authenticated_fetcher import AuthenticatedFetcher
from quote_proxy.services.refresh_coordinator import RefreshCoordinator, epoch_millis

logger = logging.getLogger(__name__)


class TokenLifecycleService:
    """Manages access to the persisted Schwab OAuth tokens."""

    def __init__(
        self,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        fetcher: AuthenticatedFetcher,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._fetcher = fetcher

    async def get_valid_access_token(self) -> str:
        return await self._fetcher.get_valid_access_token()

    async def call(self, request: UpstreamRequest) -> bytes:
        return await self._fetcher.call(request)

    async def refresh(self) -> str:
        """Proactively refresh outside the request path."""
        return await self._coordinator.refresh(None)

    async def force_reauthorization_reset(self) -> None:
        """Forget the credential pair so the authorization flow must run again."""
        for key in CREDENTIAL_KEYS:
            await self._store.delete(key)
        logger.warning("Stored Schwab credentials cleared; re-authorization required.")

    async def store_initial_grant(self, grant: TokenGrant) -> None:
        """Persist the pair returned by the authorization-code exchange."""
        await self._store.put(ACCESS_TOKEN_KEY, grant.access_token)
        if grant.refresh_token:
            await self._store.put(REFRESH_TOKEN_KEY, grant.refresh_token)
        await self._store.put(LAST_REFRESHED_KEY, str(epoch_millis()))
        logger.info("Stored initial Schwab token pair")

    async def status(self) -> TokenStatus:
        refresh_token = await self._store.get(REFRESH_TOKEN_KEY)
        raw_last_refreshed = await self._store.get(LAST_REFRESHED_KEY)
        return TokenStatus(
            authorized=bool(refresh_token),
            last_refreshed=_parse_last_refreshed(raw_last_refreshed),
            refresh_in_progress=await self._coordinator.is_refresh_in_progress(),
        )


def _parse_last_refreshed(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
    except ValueError:
        logger.warning("Ignoring unparseable last_refreshed value %r", raw)
        return None


__all__ = ["TokenLifecycleService"]
