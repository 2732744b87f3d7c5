"""Expose constructed client wrappers."""

from .credential_store import CredentialStore, InMemoryCredentialStore
from .dynamodb import DynamoDBClient
from .schwab_oauth import OAuthStateEncoder, SchwabOAuthClient
from .sqlite_store import SQLiteStore

__all__ = [
    "CredentialStore",
    "DynamoDBClient",
    "InMemoryCredentialStore",
    "OAuthStateEncoder",
    "SQLiteStore",
    "SchwabOAuthClient",
]
