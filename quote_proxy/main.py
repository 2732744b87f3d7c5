"""
FastAPI application entrypoint for the market-data proxy.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quote_proxy.api.routes import router as api_router
from quote_proxy.core.config import get_settings
from quote_proxy.core.errors import (
    InvalidOAuthStateError,
    MalformedResponseError,
    OAuthCallbackError,
    StoreUnavailableError,
    TokenExchangeTransportError,
    TokenLifecycleError,
    UnauthorizedError,
    UpstreamApiError,
    UpstreamAuthError,
)
from quote_proxy.core.logging import configure_logging
from quote_proxy.schemas import ErrorEnvelope
from quote_proxy.services.market_data import MarketDataValidationError

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
_ERROR_STATUS = (
    (InvalidOAuthStateError, HTTPStatus.BAD_REQUEST),
    (OAuthCallbackError, HTTPStatus.BAD_REQUEST),
    (UnauthorizedError, HTTPStatus.UNAUTHORIZED),
    (UpstreamAuthError, HTTPStatus.UNAUTHORIZED),
    (UpstreamApiError, HTTPStatus.BAD_GATEWAY),
    (MalformedResponseError, HTTPStatus.BAD_GATEWAY),
    (TokenExchangeTransportError, HTTPStatus.GATEWAY_TIMEOUT),
    (StoreUnavailableError, HTTPStatus.SERVICE_UNAVAILABLE),
)


def _error_response(status: HTTPStatus, detail: str) -> JSONResponse:
    envelope = ErrorEnvelope.single(status.value, status.phrase, detail)
    return JSONResponse(status_code=status.value, content=envelope.model_dump())


async def _handle_token_lifecycle_error(request: Request, exc: TokenLifecycleError) -> JSONResponse:
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    for error_type, mapped in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status = mapped
            break
    if isinstance(exc, (UnauthorizedError, UpstreamAuthError)):
        logger.warning("Re-authorization required: %s", exc)
    else:
        logger.error("Request to %s failed: %s", request.url.path, exc)
    return _error_response(status, str(exc))


async def _handle_validation_error(request: Request, exc: MarketDataValidationError) -> JSONResponse:
    return _error_response(HTTPStatus.BAD_REQUEST, str(exc))


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level, secrets=settings.redaction_secrets())

    app = FastAPI(
        title="Schwab Market Data Proxy",
        version="0.1.0",
        description="Authenticated proxy for Schwab market data with shared token refresh.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
    app.add_exception_handler(TokenLifecycleError, _handle_token_lifecycle_error)
    app.add_exception_handler(MarketDataValidationError, _handle_validation_error)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
