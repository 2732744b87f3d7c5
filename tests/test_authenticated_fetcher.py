try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from typing import List, Optional

import httpx
import pytest

from quote_proxy.clients.credential_store import InMemoryCredentialStore
from quote_proxy.core.errors import UnauthorizedError, UpstreamApiError
from quote_proxy.models.upstream import UpstreamRequest
from quote_proxy.services.authenticated_fetcher import (
    AuthenticatedFetcher,
    FetchState,
    advance,
)
from quote_proxy.utils.http import CORRELATION_HEADER

QUOTES_URL = "https://api.example.com/marketdata/v1/quotes"


class DummyCoordinator:
    """Stands in for the refresh coordinator and records every call."""

    def __init__(self, store: InMemoryCredentialStore, *, new_token: str = "B") -> None:
        self.store = store
        self.new_token = new_token
        self.calls: List[Optional[str]] = []

    async def refresh(self, failed_credential: Optional[str] = None) -> str:
        self.calls.append(failed_credential)
        refresh_token = await self.store.get("refresh_token")
        if not refresh_token:
            raise UnauthorizedError()
        await self.store.put("access_token", self.new_token)
        return self.new_token


def _fetcher(store, coordinator, handler) -> AuthenticatedFetcher:
    return AuthenticatedFetcher(store, coordinator, transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    ("state", "status", "expected"),
    [
        (FetchState.AUTHORIZED, 200, FetchState.SUCCEEDED),
        (FetchState.AUTHORIZED, 204, FetchState.SUCCEEDED),
        (FetchState.AUTHORIZED, 401, FetchState.REFRESHING),
        (FetchState.AUTHORIZED, 403, FetchState.REFRESHING),
        (FetchState.AUTHORIZED, 500, FetchState.FAILED),
        (FetchState.AUTHORIZED, 404, FetchState.FAILED),
        (FetchState.RETRIED, 200, FetchState.SUCCEEDED),
        (FetchState.RETRIED, 401, FetchState.FAILED),
        (FetchState.RETRIED, 403, FetchState.FAILED),
    ],
)
def test_advance_transitions(state, status, expected) -> None:
    assert advance(state, status) is expected


@pytest.mark.asyncio
async def test_call_returns_body_with_stored_token() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")
    coordinator = DummyCoordinator(store)
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"AAPL": {"quote": {"lastPrice": 190.5}}})

    body = await _fetcher(store, coordinator, handler).call(
        UpstreamRequest(url=QUOTES_URL, params={"symbols": "AAPL"})
    )

    assert b"lastPrice" in body
    assert coordinator.calls == []
    assert seen[0].headers["Authorization"] == "Bearer A"
    assert seen[0].headers["Accept"] == "application/json"
    assert seen[0].url.params["symbols"] == "AAPL"


@pytest.mark.asyncio
async def test_rejected_token_is_refreshed_and_retried_once() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")
    await store.put("refresh_token", "R1")
    coordinator = DummyCoordinator(store, new_token="B")
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.headers["Authorization"] == "Bearer A":
            return httpx.Response(403, text="forbidden")
        return httpx.Response(200, json={"ok": True})

    body = await _fetcher(store, coordinator, handler).call(UpstreamRequest(url=QUOTES_URL))

    assert json.loads(body) == {"ok": True}
    assert coordinator.calls == ["A"]
    assert [request.headers["Authorization"] for request in seen] == ["Bearer A", "Bearer B"]
    correlation_ids = {request.headers[CORRELATION_HEADER] for request in seen}
    assert len(correlation_ids) == 2


@pytest.mark.asyncio
async def test_second_rejection_fails_without_another_refresh() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")
    await store.put("refresh_token", "R1")
    coordinator = DummyCoordinator(store)
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(401, text="unauthorized")

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(store, coordinator, handler).call(UpstreamRequest(url=QUOTES_URL))

    assert exc_info.value.status == 401
    assert len(seen) == 2
    assert coordinator.calls == ["A"]


@pytest.mark.asyncio
async def test_server_error_is_not_retried() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")
    coordinator = DummyCoordinator(store)
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(500, text="boom")

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(store, coordinator, handler).call(UpstreamRequest(url=QUOTES_URL))

    assert exc_info.value.status == 500
    assert exc_info.value.body == "boom"
    assert "API request failed: 500" in str(exc_info.value)
    assert len(seen) == 1
    assert coordinator.calls == []


@pytest.mark.asyncio
async def test_missing_access_token_is_bootstrapped_from_refresh_token() -> None:
    store = InMemoryCredentialStore()
    await store.put("refresh_token", "R1")
    coordinator = DummyCoordinator(store, new_token="B")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    fetcher = _fetcher(store, coordinator, handler)

    assert await fetcher.get_valid_access_token() == "B"
    assert coordinator.calls == [None]


@pytest.mark.asyncio
async def test_missing_credentials_raise_unauthorized_without_upstream_call() -> None:
    store = InMemoryCredentialStore()
    coordinator = DummyCoordinator(store)
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(UnauthorizedError, match="Please authorize first"):
        await _fetcher(store, coordinator, handler).call(UpstreamRequest(url=QUOTES_URL))

    assert seen == []


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_gateway_timeout() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(store, DummyCoordinator(store), handler).call(
            UpstreamRequest(url=QUOTES_URL)
        )

    assert exc_info.value.status == 504


@pytest.mark.asyncio
async def test_connection_error_maps_to_bad_gateway() -> None:
    store = InMemoryCredentialStore()
    await store.put("access_token", "A")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamApiError) as exc_info:
        await _fetcher(store, DummyCoordinator(store), handler).call(
            UpstreamRequest(url=QUOTES_URL)
        )

    assert exc_info.value.status == 502
