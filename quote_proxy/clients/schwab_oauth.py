"""
Schwab OAuth utilities.

These helpers build the consent URL, guard the ``state`` round-trip, and
perform the token endpoint exchanges. They hold no shared state and never
retry: retry policy belongs to the caller.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import time
from hashlib import sha256
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from quote_proxy.core.config import SchwabSettings
from quote_proxy.core.errors import (
    InvalidOAuthStateError,
    MalformedResponseError,
    TokenExchangeTransportError,
    UpstreamAuthError,
)
from quote_proxy.models.credentials import TokenGrant
from quote_proxy.utils.http import basic_auth_header, build_timeout, is_success

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str, *, ttl_seconds: int = 300) -> None:
        self._secret_key = secret_key.encode("utf-8")
        self._ttl_seconds = ttl_seconds

    def encode(self, payload: Dict[str, Any]) -> str:
        body = {**payload, "issued_at": int(time.time())}
        serialized = json.dumps(body, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidOAuthStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidOAuthStateError("Invalid OAuth state signature.")
        payload = json.loads(serialized)
        issued_at = payload.get("issued_at")
        if not isinstance(issued_at, int) or time.time() - issued_at > self._ttl_seconds:
            raise InvalidOAuthStateError("OAuth state has expired; start authorization again.")
        return payload


class SchwabOAuthClient:
    """Build Schwab authorization URLs and call the token endpoint."""

    def __init__(
        self,
        settings: SchwabSettings,
        *,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._timeout = build_timeout(timeout_seconds)
        self._transport = transport

    def __repr__(self) -> str:
        return f"SchwabOAuthClient(app_key={self._settings.app_key!r}, token_endpoint={self._settings.token_endpoint!r})"

    def build_authorization_url(self, state: str, redirect_uri: str) -> str:
        """Construct the Schwab consent URL."""
        params = {
            "client_id": self._settings.app_key,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        return f"{self._settings.authorization_endpoint}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenGrant:
        """Exchange an authorization code for the first token pair."""
        if not code:
            raise ValueError("Authorization code must not be empty.")
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Run one refresh grant. The returned ``refresh_token`` may be ``None``."""
        if not refresh_token:
            raise ValueError("Refresh token must not be empty.")
        return await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _request_token(self, form: Mapping[str, str]) -> TokenGrant:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": basic_auth_header(self._settings.app_key, self._settings.app_secret),
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._settings.token_endpoint,
                    content=urlencode(form),
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise TokenExchangeTransportError(
                f"Token endpoint unreachable ({form['grant_type']}): {exc.__class__.__name__}"
            ) from exc

        if not is_success(response.status_code):
            logger.error(
                "Token exchange rejected",
                extra={"grant_type": form["grant_type"], "status": response.status_code},
            )
            raise UpstreamAuthError(response.status_code, response.text)

        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise MalformedResponseError(
                "No access token received from the authorization server."
            ) from exc


__all__ = ["OAuthStateEncoder", "SchwabOAuthClient"]
