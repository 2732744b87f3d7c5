"""
Error taxonomy for the token lifecycle and authenticated upstream calls.

Every error raised by the credential store, the OAuth exchange, the refresh
coordinator, or the authenticated fetcher derives from ``TokenLifecycleError``
so the HTTP layer and the scheduled workers can translate them in one place.
"""

from __future__ import annotations

_MAX_BODY_CHARS = 1000


def _clip(body: str) -> str:
    if len(body) <= _MAX_BODY_CHARS:
        return body
    return f"{body[:_MAX_BODY_CHARS]}..."


class TokenLifecycleError(Exception):
    """Base class for token lifecycle failures."""


class UnauthorizedError(TokenLifecycleError):
    """Raised when no refresh token exists and the authorization flow must run first."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No refresh token found. Please authorize first."
        )


class UpstreamAuthError(TokenLifecycleError):
    """Raised when the authorization server rejects a token exchange."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"Token exchange failed: {status} - {_clip(body)}")


class MalformedResponseError(TokenLifecycleError):
    """Raised when the authorization server answers 2xx without an access token."""


class TokenExchangeTransportError(TokenLifecycleError):
    """Raised when the token endpoint could not be reached or timed out."""


class UpstreamApiError(TokenLifecycleError):
    """Raised when a market-data call fails for a reason other than a recoverable 401/403."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"API request failed: {status} - {_clip(body)}")


class StoreUnavailableError(TokenLifecycleError):
    """Raised when a credential store operation fails."""


class InvalidOAuthStateError(TokenLifecycleError):
    """Raised when an OAuth ``state`` value is forged, malformed, or expired."""


class OAuthCallbackError(TokenLifecycleError):
    """Raised when Schwab redirects back without an authorization code."""


__all__ = [
    "InvalidOAuthStateError",
    "MalformedResponseError",
    "OAuthCallbackError",
    "StoreUnavailableError",
    "TokenExchangeTransportError",
    "TokenLifecycleError",
    "UnauthorizedError",
    "UpstreamApiError",
    "UpstreamAuthError",
]
