"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    build_credential_store,
    build_token_lifecycle_service,
    get_credential_store,
    get_market_data_service,
    get_oauth_state_encoder,
    get_schwab_oauth_client,
    get_token_lifecycle_service,
)
from .config import get_app_settings, get_redirect_uri

__all__ = [
    "build_credential_store",
    "build_token_lifecycle_service",
    "get_app_settings",
    "get_credential_store",
    "get_market_data_service",
    "get_oauth_state_encoder",
    "get_redirect_uri",
    "get_schwab_oauth_client",
    "get_token_lifecycle_service",
]
