"""
FastAPI dependency utilities for injecting configuration.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from quote_proxy.core.config import AppSettings, get_settings

CALLBACK_ROUTE_NAME = "schwab_oauth_callback"


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_redirect_uri(
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> str:
    """Return the registered callback URL, or derive it from the incoming request."""
    if settings.schwab.redirect_uri:
        return str(settings.schwab.redirect_uri)
    return str(request.url_for(CALLBACK_ROUTE_NAME))


__all__ = [
    "CALLBACK_ROUTE_NAME",
    "get_app_settings",
    "get_redirect_uri",
]
