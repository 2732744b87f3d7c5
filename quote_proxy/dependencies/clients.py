"""
Factory functions to provide shared clients and services as FastAPI dependencies.

The scheduled refresh worker reuses the same factories so both entry points
coordinate through one credential store configuration.
"""

from functools import lru_cache

from quote_proxy.clients import (
    CredentialStore,
    DynamoDBClient,
    InMemoryCredentialStore,
    OAuthStateEncoder,
    SchwabOAuthClient,
    SQLiteStore,
)
from quote_proxy.core.config import AppSettings, get_settings
from quote_proxy.services import (
    AuthenticatedFetcher,
    EncryptedCredentialStore,
    MarketDataService,
    RefreshCoordinator,
    TokenCipherService,
    TokenLifecycleService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Schwab app secret."""
    settings = _settings()
    return OAuthStateEncoder(
        secret_key=settings.schwab.app_secret,
        ttl_seconds=settings.security.oauth_state_ttl_seconds,
    )


@lru_cache()
def get_schwab_oauth_client() -> SchwabOAuthClient:
    """Create a singleton Schwab OAuth client."""
    settings = _settings()
    return SchwabOAuthClient(
        settings.schwab, timeout_seconds=settings.refresh.http_timeout_seconds
    )


def build_credential_store(settings: AppSettings) -> CredentialStore:
    """Construct the configured backend, wrapped with encryption when a secret is set."""
    backend = settings.store.backend
    store: CredentialStore
    if backend == "dynamodb":
        store = DynamoDBClient(settings.aws, key_prefix=settings.store.key_prefix)
    elif backend == "sqlite":
        store = SQLiteStore(settings.store.sqlite_path, key_prefix=settings.store.key_prefix)
    else:
        store = InMemoryCredentialStore()

    secret = settings.security.token_encryption_secret
    if secret:
        store = EncryptedCredentialStore(store, TokenCipherService(secret=secret))
    return store


def build_token_lifecycle_service(
    settings: AppSettings,
    store: CredentialStore,
    oauth_client: SchwabOAuthClient,
) -> TokenLifecycleService:
    """Wire the coordinator and fetcher around one shared store."""
    coordinator = RefreshCoordinator(store=store, exchange=oauth_client, settings=settings.refresh)
    fetcher = AuthenticatedFetcher(
        store,
        coordinator,
        timeout_seconds=settings.refresh.http_timeout_seconds,
    )
    return TokenLifecycleService(store=store, coordinator=coordinator, fetcher=fetcher)


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the process-wide credential store."""
    return build_credential_store(_settings())


@lru_cache()
def get_token_lifecycle_service() -> TokenLifecycleService:
    """Provide the token lifecycle facade."""
    return build_token_lifecycle_service(
        _settings(), get_credential_store(), get_schwab_oauth_client()
    )


def get_market_data_service() -> MarketDataService:
    """Build a market data service on top of the shared token lifecycle."""
    settings = _settings()
    return MarketDataService(
        token_service=get_token_lifecycle_service(),
        base_url=settings.schwab.marketdata_base_url,
    )


__all__ = [
    "build_credential_store",
    "build_token_lifecycle_service",
    "get_credential_store",
    "get_market_data_service",
    "get_oauth_state_encoder",
    "get_schwab_oauth_client",
    "get_token_lifecycle_service",
]
