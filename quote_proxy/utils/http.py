"""HTTP helpers shared by the OAuth exchange and the authenticated fetcher."""

from __future__ import annotations

import base64
import uuid

import httpx

CORRELATION_HEADER = "Schwab-Client-CorrelId"


def basic_auth_header(client_id: str, client_secret: str) -> str:
    """Build an HTTP Basic ``Authorization`` value from client credentials."""
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


def bearer_auth_header(access_token: str) -> str:
    return f"Bearer {access_token}"


def new_correlation_id() -> str:
    """Return a unique identifier for tracing one outbound call upstream."""
    return str(uuid.uuid4())


def build_timeout(seconds: float) -> httpx.Timeout:
    """Bound the whole exchange, with a shorter connect phase."""
    return httpx.Timeout(seconds, connect=min(seconds, 5.0))


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


__all__ = [
    "CORRELATION_HEADER",
    "basic_auth_header",
    "bearer_auth_header",
    "build_timeout",
    "is_success",
    "new_correlation_id",
]
