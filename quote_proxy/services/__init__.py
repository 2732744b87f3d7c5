"""Service layer exports."""

from .authenticated_fetcher import AuthenticatedFetcher, FetchState
from .market_data import MarketDataService, MarketDataValidationError
from .refresh_coordinator import RefreshCoordinator
from .token_cipher import EncryptedCredentialStore, TokenCipherService
from .token_lifecycle import TokenLifecycleService

__all__ = [
    "AuthenticatedFetcher",
    "EncryptedCredentialStore",
    "FetchState",
    "MarketDataService",
    "MarketDataValidationError",
    "RefreshCoordinator",
    "TokenCipherService",
    "TokenLifecycleService",
]
