"""
Credential store contract and an in-process implementation.

Stores expose get / put-with-optional-TTL / delete over string values. Shared
backends are eventually consistent and offer no transactions, so callers
must not assume that two keys written one after the other are observed
together.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class CredentialStore(Protocol):
    """Key-value persistence used for the shared credential pair and refresh lock."""

    supports_conditional_put: bool

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` when absent or expired."""

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value``, overwriting any existing one; expire it after ``ttl_seconds``."""

    async def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""

    async def put_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        """Store ``value`` only when ``key`` is absent; return whether it was written.

        Only meaningful when ``supports_conditional_put`` is true.
        """


class InMemoryCredentialStore:
    """Dictionary-backed store for tests and single-process deployments."""

    supports_conditional_put = True

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._items[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        return self._live_value(key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._items[key] = (value, self._expiry(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def put_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        if self._live_value(key) is not None:
            return False
        self._items[key] = (value, self._expiry(ttl_seconds))
        return True


__all__ = ["CredentialStore", "InMemoryCredentialStore"]
