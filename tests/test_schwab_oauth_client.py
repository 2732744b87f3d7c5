try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from typing import List
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

import quote_proxy.clients.schwab_oauth as schwab_oauth
from quote_proxy.clients.schwab_oauth import OAuthStateEncoder, SchwabOAuthClient
from quote_proxy.core.config import SchwabSettings
from quote_proxy.core.errors import (
    InvalidOAuthStateError,
    MalformedResponseError,
    TokenExchangeTransportError,
    UpstreamAuthError,
)

TOKEN_URL = "https://auth.example.com/v1/oauth/token"
REDIRECT_URI = "https://proxy.example.com/api/auth/schwab/callback"


def _settings() -> SchwabSettings:
    return SchwabSettings(
        app_key="app-key",
        app_secret="app-secret",
        token_endpoint=TOKEN_URL,
        authorization_endpoint="https://auth.example.com/v1/oauth/authorize",
    )


def _client(handler) -> SchwabOAuthClient:
    return SchwabOAuthClient(_settings(), transport=httpx.MockTransport(handler))


def test_state_encoder_roundtrip() -> None:
    encoder = OAuthStateEncoder("state-secret")
    state = encoder.encode({"nonce": "abc", "redirect_to": "https://app.example.com"})

    payload = encoder.decode(state)

    assert payload["nonce"] == "abc"
    assert payload["redirect_to"] == "https://app.example.com"
    assert isinstance(payload["issued_at"], int)


def test_state_encoder_rejects_tampered_state() -> None:
    state = OAuthStateEncoder("state-secret").encode({"nonce": "abc"})

    with pytest.raises(InvalidOAuthStateError):
        OAuthStateEncoder("other-secret").decode(state)


def test_state_encoder_rejects_malformed_state() -> None:
    with pytest.raises(InvalidOAuthStateError):
        OAuthStateEncoder("state-secret").decode("%%%not-base64%%%")


def test_state_encoder_rejects_expired_state(monkeypatch: pytest.MonkeyPatch) -> None:
    encoder = OAuthStateEncoder("state-secret", ttl_seconds=300)
    state = encoder.encode({"nonce": "abc"})

    real_time = schwab_oauth.time.time
    monkeypatch.setattr(schwab_oauth.time, "time", lambda: real_time() + 301)

    with pytest.raises(InvalidOAuthStateError, match="expired"):
        encoder.decode(state)


def test_authorization_url_carries_client_and_state() -> None:
    client = SchwabOAuthClient(_settings())

    url = client.build_authorization_url("signed-state", REDIRECT_URI)

    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert parsed.netloc == "auth.example.com"
    assert query["client_id"] == ["app-key"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == [REDIRECT_URI]
    assert query["state"] == ["signed-state"]


def test_repr_does_not_leak_secret() -> None:
    assert "app-secret" not in repr(SchwabOAuthClient(_settings()))


@pytest.mark.asyncio
async def test_refresh_token_posts_form_with_basic_auth() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"access_token": "B", "refresh_token": "R2", "expires_in": 1800},
        )

    grant = await _client(handler).refresh_token("R1")

    assert grant.access_token == "B"
    assert grant.refresh_token == "R2"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == TOKEN_URL
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    expected_auth = base64.b64encode(b"app-key:app-secret").decode("ascii")
    assert request.headers["Authorization"] == f"Basic {expected_auth}"
    form = parse_qs(request.content.decode("utf-8"))
    assert form == {"grant_type": ["refresh_token"], "refresh_token": ["R1"]}


@pytest.mark.asyncio
async def test_refresh_without_rotation_returns_no_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "B"})

    grant = await _client(handler).refresh_token("R1")

    assert grant.refresh_token is None


@pytest.mark.asyncio
async def test_exchange_authorization_code_sends_code_and_redirect() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "A", "refresh_token": "R1"})

    grant = await _client(handler).exchange_authorization_code("code-123", REDIRECT_URI)

    assert grant.access_token == "A"
    form = parse_qs(seen[0].content.decode("utf-8"))
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["code-123"]
    assert form["redirect_uri"] == [REDIRECT_URI]


@pytest.mark.asyncio
async def test_rejected_exchange_raises_upstream_auth_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text=json.dumps({"error": "invalid_grant"}))

    with pytest.raises(UpstreamAuthError) as exc_info:
        await _client(handler).refresh_token("R1")

    assert exc_info.value.status == 400
    assert "invalid_grant" in str(exc_info.value)


@pytest.mark.asyncio
async def test_success_without_access_token_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"token_type": "Bearer"})

    with pytest.raises(MalformedResponseError):
        await _client(handler).refresh_token("R1")


@pytest.mark.asyncio
async def test_success_with_non_json_body_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(MalformedResponseError):
        await _client(handler).refresh_token("R1")


@pytest.mark.asyncio
async def test_unreachable_token_endpoint_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(TokenExchangeTransportError):
        await _client(handler).refresh_token("R1")


@pytest.mark.asyncio
async def test_empty_refresh_token_is_rejected_locally() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - not reached
        raise AssertionError("no request expected")

    with pytest.raises(ValueError):
        await _client(handler).refresh_token("")
