"""
Authenticated upstream calls with a single refresh-and-retry on credential rejection.

A call moves through a small state machine::

    AUTHORIZED --2xx--> SUCCEEDED
    AUTHORIZED --401/403--> REFRESHING --> RETRIED
    AUTHORIZED --other--> FAILED
    RETRIED --2xx--> SUCCEEDED
    RETRIED --anything else--> FAILED

``RETRIED`` has no edge back to ``REFRESHING``, so a call never issues more
than two upstream requests.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

import httpx

from quote_proxy.clients.credential_store import CredentialStore
from quote_proxy.core.errors import UpstreamApiError
from quote_proxy.models.credentials import ACCESS_TOKEN_KEY
from quote_proxy.models.upstream import UpstreamRequest
from quote_proxy.services.refresh_coordinator import RefreshCoordinator
from quote_proxy.utils.http import (
    CORRELATION_HEADER,
    bearer_auth_header,
    build_timeout,
    is_success,
    new_correlation_id,
)

logger = logging.getLogger(__name__)

_AUTH_REJECTION_STATUSES = frozenset({401, 403})


class FetchState(str, enum.Enum):
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"
    RETRIED = "retried"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def advance(state: FetchState, status_code: int) -> FetchState:
    """Return the state that follows an upstream response received in ``state``."""
    if is_success(status_code):
        return FetchState.SUCCEEDED
    if state is FetchState.AUTHORIZED and status_code in _AUTH_REJECTION_STATUSES:
        return FetchState.REFRESHING
    return FetchState.FAILED


class AuthenticatedFetcher:
    """Issue market-data calls with the shared bearer token."""

    def __init__(
        self,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        *,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._timeout = build_timeout(timeout_seconds)
        self._transport = transport

    async def get_valid_access_token(self) -> str:
        """Return the stored access token, bootstrapping one from the refresh token if absent."""
        access_token = await self._store.get(ACCESS_TOKEN_KEY)
        if not access_token:
            access_token = await self._coordinator.refresh(None)
        return access_token

    async def call(self, request: UpstreamRequest) -> bytes:
        """Execute ``request`` and return the raw response body."""
        access_token = await self.get_valid_access_token()
        state = FetchState.AUTHORIZED

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            while True:
                response = await self._send(client, request, access_token)
                state = advance(state, response.status_code)
                if state is not FetchState.REFRESHING:
                    break
                logger.info(
                    "Access token rejected. Refreshing and retrying.",
                    extra={"status": response.status_code, "url": request.url},
                )
                access_token = await self._coordinator.refresh(access_token)
                state = FetchState.RETRIED

        if state is FetchState.SUCCEEDED:
            return response.content
        raise UpstreamApiError(response.status_code, response.text)

    async def _send(
        self, client: httpx.AsyncClient, request: UpstreamRequest, access_token: str
    ) -> httpx.Response:
        headers = {
            **request.headers,
            "Authorization": bearer_auth_header(access_token),
            "Accept": "application/json",
            CORRELATION_HEADER: new_correlation_id(),
        }
        try:
            return await client.request(
                request.method,
                request.url,
                params=dict(request.params) or None,
                headers=headers,
                json=request.json,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamApiError(504, f"Upstream request timed out: {request.url}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamApiError(
                502, f"Upstream request failed: {exc.__class__.__name__}"
            ) from exc


__all__ = ["AuthenticatedFetcher", "FetchState", "advance"]
