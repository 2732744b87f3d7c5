"""
FastAPI routes for the market-data proxy.
"""

from __future__ import annotations

import logging
import uuid
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from quote_proxy.core.errors import InvalidOAuthStateError, OAuthCallbackError
from quote_proxy.dependencies import (
    get_app_settings,
    get_market_data_service,
    get_oauth_state_encoder,
    get_redirect_uri,
    get_schwab_oauth_client,
    get_token_lifecycle_service,
)
from quote_proxy.dependencies.config import CALLBACK_ROUTE_NAME
from quote_proxy.models.credentials import TokenStatus
from quote_proxy.schemas import (
    AuthorizationStart,
    ConnectionResult,
    OAuthCallbackPayload,
    ResetResult,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


def _allowed_redirect(target: Optional[str], frontend_base_url: Any) -> Optional[str]:
    """Keep ``target`` only when it shares the configured frontend origin."""
    if not target or not frontend_base_url:
        return None
    if _origin(target) != _origin(str(frontend_base_url)):
        logger.warning("Ignoring redirect target outside the frontend origin")
        return None
    return target


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/schwab/authorize", status_code=HTTPStatus.OK, response_model=None)
async def start_schwab_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_schwab_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect_uri: Annotated[str, Depends(get_redirect_uri)],
    redirect_to: Optional[str] = Query(
        default=None,
        description="Optional URL to redirect back to on successful authorization.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Schwab consent screen.",
    ),
) -> AuthorizationStart | RedirectResponse:
    """Kick off the OAuth flow by generating a state token and authorization URL."""
    state = state_encoder.encode({"nonce": uuid.uuid4().hex, "redirect_to": redirect_to})
    authorization_url = oauth_client.build_authorization_url(state, redirect_uri)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return AuthorizationStart(authorization_url=authorization_url, state=state)


@router.post("/auth/schwab/callback", response_model=ConnectionResult)
async def complete_schwab_oauth_flow(
    payload: OAuthCallbackPayload,
    oauth_client: Annotated[Any, Depends(get_schwab_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    redirect_uri: Annotated[str, Depends(get_redirect_uri)],
) -> ConnectionResult:
    """Complete the OAuth exchange and store the first token pair."""
    state_data = state_encoder.decode(payload.state)
    grant = await oauth_client.exchange_authorization_code(payload.code, redirect_uri)
    await token_service.store_initial_grant(grant)
    logger.info("Schwab account connected")
    redirect_to = _allowed_redirect(state_data.get("redirect_to"), settings.frontend_base_url)
    return ConnectionResult(status="connected", redirect_to=redirect_to)


@router.get("/auth/schwab/callback", name=CALLBACK_ROUTE_NAME, response_model=None)
async def handle_schwab_oauth_callback(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_schwab_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    redirect_uri: Annotated[str, Depends(get_redirect_uri)],
    state: Optional[str] = Query(default=None, description="OAuth state token."),
    code: Optional[str] = Query(default=None, description="Authorization code returned by Schwab."),
    error: Optional[str] = Query(default=None, description="Error reported by Schwab."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    if not code:
        detail = "No code received from Schwab."
        if error:
            detail = f"{detail} Schwab reported: {error}"
        raise OAuthCallbackError(detail)
    if not state:
        raise InvalidOAuthStateError("Missing OAuth state.")

    result = await complete_schwab_oauth_flow(
        payload=OAuthCallbackPayload(state=state, code=code),
        oauth_client=oauth_client,
        state_encoder=state_encoder,
        token_service=token_service,
        settings=settings,
        redirect_uri=redirect_uri,
    )

    redirect_target = result.redirect_to or settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(content=result.model_dump())


@router.get("/auth/status", response_model=TokenStatus)
async def token_status(
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
) -> TokenStatus:
    return await token_service.status()


@router.post("/auth/refresh", response_model=TokenStatus)
async def refresh_tokens(
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
) -> TokenStatus:
    """Refresh proactively; the new token itself is never returned."""
    await token_service.refresh()
    return await token_service.status()


@router.post("/auth/clear", response_model=ResetResult)
async def clear_tokens(
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
) -> ResetResult:
    await token_service.force_reauthorization_reset()
    return ResetResult()


@router.get("/quote")
async def get_quotes(
    service: Annotated[Any, Depends(get_market_data_service)],
    symbols: Optional[str] = Query(default=None, description="Comma-separated symbols."),
    symbol: Optional[str] = Query(default=None, description="Legacy single-symbol alias."),
    fields: Optional[str] = Query(default=None),
    indicative: Optional[str] = Query(default=None),
) -> Any:
    return await service.get_quotes(
        symbols=symbols or symbol or "", fields=fields, indicative=indicative
    )


@router.get("/pricehistory")
async def get_price_history(
    request: Request,
    service: Annotated[Any, Depends(get_market_data_service)],
) -> Any:
    return await service.get_price_history(dict(request.query_params))


@router.get("/movers/{symbol_id}")
async def get_movers(
    symbol_id: str,
    service: Annotated[Any, Depends(get_market_data_service)],
    sort: Optional[str] = Query(default=None),
    frequency: Optional[str] = Query(default=None),
) -> Any:
    return await service.get_movers(symbol_id, sort=sort, frequency=frequency)


@router.get("/markets")
async def get_market_hours(
    service: Annotated[Any, Depends(get_market_data_service)],
    markets: Optional[str] = Query(default=None),
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD"),
) -> Any:
    return await service.get_market_hours(markets=markets or "", on_date=date)
