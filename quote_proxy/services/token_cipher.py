"""Symmetric encryption utilities for protecting stored tokens."""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken

from quote_proxy.clients.credential_store import CredentialStore
from quote_proxy.core.errors import StoreUnavailableError
from quote_proxy.models.credentials import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY

logger = logging.getLogger(__name__)

_FERNET_VERSION = 0x80


class TokenCipherService:
    """Encrypt and decrypt sensitive strings using a derived Fernet key."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        key = base64.urlsafe_b64encode(digest)
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the ciphertext."""
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext string and return the plaintext."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    @staticmethod
    def is_ciphertext(value: str) -> bool:
        """Return True when ``value`` is shaped like a Fernet token, whatever its key."""
        try:
            raw = base64.urlsafe_b64decode(value.encode("utf-8"))
        except (ValueError, TypeError):
            return False
        # version byte, 8-byte timestamp, 16-byte IV, AES blocks, 32-byte HMAC
        if len(raw) < 73 or (len(raw) - 57) % 16:
            return False
        return raw[0] == _FERNET_VERSION and raw[1:5] == b"\x00\x00\x00\x00"


class EncryptedCredentialStore:
    """Wrap a credential store so token values are encrypted at rest.

    Only the token keys are encrypted; the lock sentinel and the refresh
    timestamp pass through unchanged. Values written before encryption was
    enabled are read as plaintext and re-written encrypted; a Fernet token
    that the configured key cannot open raises instead.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: TokenCipherService,
        *,
        encrypted_keys: Iterable[str] = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY),
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._encrypted_keys = frozenset(encrypted_keys)

    @property
    def supports_conditional_put(self) -> bool:
        return getattr(self._store, "supports_conditional_put", False)

    def _seal(self, key: str, value: str) -> str:
        if key in self._encrypted_keys:
            return self._cipher.encrypt(value)
        return value

    async def get(self, key: str) -> Optional[str]:
        stored = await self._store.get(key)
        if stored is None or key not in self._encrypted_keys:
            return stored
        try:
            return self._cipher.decrypt(stored)
        except ValueError as exc:
            if self._cipher.is_ciphertext(stored):
                # Encrypted under another key; the stored value must stay intact.
                raise StoreUnavailableError(
                    f"Cannot decrypt stored {key}; check TOKEN_ENCRYPTION_SECRET."
                ) from exc
            logger.warning("Migrating plaintext credential to encrypted storage", extra={"key": key})
            await self._store.put(key, self._cipher.encrypt(stored))
            return stored

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._store.put(key, self._seal(key, value), ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._store.delete(key)

    async def put_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        return await self._store.put_if_absent(key, self._seal(key, value), ttl_seconds)


__all__ = ["EncryptedCredentialStore", "TokenCipherService"]
