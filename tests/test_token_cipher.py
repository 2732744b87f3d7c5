try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from quote_proxy.clients.credential_store import InMemoryCredentialStore
from quote_proxy.core.errors import StoreUnavailableError
from quote_proxy.services.token_cipher import EncryptedCredentialStore, TokenCipherService


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secret="super-secret-key")
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext

    decrypted = cipher.decrypt(encrypted)
    assert decrypted == plaintext


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secret="another-secret")

    with pytest.raises(ValueError):
        cipher.decrypt("not-valid")


def test_token_cipher_requires_secret() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secret="")


@pytest.mark.asyncio
async def test_encrypted_store_hides_tokens_at_rest() -> None:
    inner = InMemoryCredentialStore()
    store = EncryptedCredentialStore(inner, TokenCipherService(secret="at-rest"))

    await store.put("access_token", "A")
    await store.put("refresh_token", "R1")
    await store.put("last_refreshed", "1000")

    assert await inner.get("access_token") not in (None, "A")
    assert await inner.get("refresh_token") not in (None, "R1")
    assert await inner.get("last_refreshed") == "1000"
    assert await store.get("access_token") == "A"
    assert await store.get("refresh_token") == "R1"


@pytest.mark.asyncio
async def test_encrypted_store_passes_lock_through_unchanged() -> None:
    inner = InMemoryCredentialStore()
    store = EncryptedCredentialStore(inner, TokenCipherService(secret="at-rest"))

    assert store.supports_conditional_put is True
    assert await store.put_if_absent("refresh_lock", "true", ttl_seconds=60) is True
    assert await store.put_if_absent("refresh_lock", "true", ttl_seconds=60) is False
    assert await inner.get("refresh_lock") == "true"

    await store.delete("refresh_lock")
    assert await store.get("refresh_lock") is None


@pytest.mark.asyncio
async def test_encrypted_store_migrates_legacy_plaintext_tokens() -> None:
    inner = InMemoryCredentialStore()
    await inner.put("refresh_token", "legacy-refresh")
    cipher = TokenCipherService(secret="at-rest")
    store = EncryptedCredentialStore(inner, cipher)

    assert await store.get("refresh_token") == "legacy-refresh"

    migrated = await inner.get("refresh_token")
    assert migrated != "legacy-refresh"
    assert cipher.decrypt(migrated) == "legacy-refresh"


@pytest.mark.asyncio
async def test_encrypted_store_refuses_token_sealed_with_another_secret() -> None:
    inner = InMemoryCredentialStore()
    original = EncryptedCredentialStore(inner, TokenCipherService(secret="s1"))
    rotated = EncryptedCredentialStore(inner, TokenCipherService(secret="s2"))
    await original.put("refresh_token", "R1")
    sealed = await inner.get("refresh_token")

    with pytest.raises(StoreUnavailableError, match="TOKEN_ENCRYPTION_SECRET"):
        await rotated.get("refresh_token")

    assert await inner.get("refresh_token") == sealed
    assert await original.get("refresh_token") == "R1"


def test_is_ciphertext_distinguishes_fernet_tokens() -> None:
    cipher = TokenCipherService(secret="s1")

    assert TokenCipherService.is_ciphertext(cipher.encrypt("R1")) is True
    assert TokenCipherService.is_ciphertext("legacy-refresh") is False
    assert TokenCipherService.is_ciphertext("I0.b2F1dGgyLmNkYy5zY2h3YWIuY29t.token") is False
