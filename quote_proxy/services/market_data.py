"""
Shapes market-data queries into upstream requests and decodes their results.

Authentication and retry belong to ``TokenLifecycleService``; this module
only knows which parameters each Schwab endpoint accepts.
"""

from __future__ import annotations

import json
import re
from datetime import date
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from quote_proxy.core.errors import UpstreamApiError
from quote_proxy.models.upstream import UpstreamRequest
from quote_proxy.services.token_lifecycle import TokenLifecycleService

PRICE_HISTORY_PARAMS = (
    "symbol",
    "periodType",
    "period",
    "frequencyType",
    "frequency",
    "startDate",
    "endDate",
    "needExtendedHoursData",
    "needPreviousClose",
)
MOVER_INDEXES = (
    "$DJI",
    "$COMPX",
    "$SPX",
    "NYSE",
    "NASDAQ",
    "OTCBB",
    "INDEX_ALL",
    "EQUITY_ALL",
    "OPTION_ALL",
    "OPTION_PUT",
    "OPTION_CALL",
)
MOVER_SORTS = ("VOLUME", "TRADES", "PERCENT_CHANGE_UP", "PERCENT_CHANGE_DOWN")
MOVER_FREQUENCIES = ("0", "1", "5", "10", "30", "60")
MARKETS = ("equity", "option", "bond", "future", "forex")

_DOLLAR_INDEXES = {"DJI", "COMPX", "SPX"}
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MarketDataValidationError(ValueError):
    """Raised when a query cannot be forwarded as given."""


def normalize_mover_index(symbol_id: str) -> str:
    """Accept ``DJI`` as well as ``$DJI`` for the dollar-prefixed indexes."""
    if symbol_id in _DOLLAR_INDEXES:
        return f"${symbol_id}"
    return symbol_id


def validate_market_date(raw: str, *, today: Optional[date] = None) -> str:
    """Check ``raw`` is YYYY-MM-DD and falls between today and one year ahead."""
    if not _DATE_PATTERN.match(raw):
        raise MarketDataValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        parsed = date.fromisoformat(raw)
    except ValueError as exc:
        raise MarketDataValidationError("Invalid date format. Use YYYY-MM-DD") from exc

    today = today or date.today()
    try:
        one_year_ahead = today.replace(year=today.year + 1)
    except ValueError:
        # Feb 29 has no counterpart next year.
        one_year_ahead = today.replace(year=today.year + 1, day=28)
    if parsed < today or parsed > one_year_ahead:
        raise MarketDataValidationError("Date must be between today and 1 year from today")
    return raw


class MarketDataService:
    """Forward quote, price history, movers and market hours queries."""

    def __init__(self, token_service: TokenLifecycleService, base_url: str) -> None:
        self._tokens = token_service
        self._base_url = base_url.rstrip("/")

    async def get_quotes(
        self,
        *,
        symbols: str,
        fields: Optional[str] = None,
        indicative: Optional[str] = None,
    ) -> Any:
        if not symbols:
            raise MarketDataValidationError("Missing symbols parameter")
        params = {"symbols": symbols}
        if fields:
            params["fields"] = fields
        if indicative:
            params["indicative"] = indicative
        return await self._fetch("quotes", params)

    async def get_price_history(self, query: Mapping[str, str]) -> Any:
        if not query.get("symbol"):
            raise MarketDataValidationError("Missing symbol parameter")
        params = {name: query[name] for name in PRICE_HISTORY_PARAMS if name in query}
        return await self._fetch("pricehistory", params)

    async def get_movers(
        self,
        symbol_id: str,
        *,
        sort: Optional[str] = None,
        frequency: Optional[str] = None,
    ) -> Any:
        if not symbol_id:
            raise MarketDataValidationError("Missing symbol_id path parameter")
        index = normalize_mover_index(symbol_id)
        if index not in MOVER_INDEXES:
            raise MarketDataValidationError(
                f"Invalid symbol_id. Valid values: {', '.join(MOVER_INDEXES)}"
            )
        if sort and sort not in MOVER_SORTS:
            raise MarketDataValidationError(
                f"Invalid sort parameter. Valid values: {', '.join(MOVER_SORTS)}"
            )
        if frequency and frequency not in MOVER_FREQUENCIES:
            raise MarketDataValidationError(
                f"Invalid frequency parameter. Valid values: {', '.join(MOVER_FREQUENCIES)}"
            )

        params: Dict[str, str] = {}
        if sort:
            params["sort"] = sort
        if frequency:
            params["frequency"] = frequency
        return await self._fetch(f"movers/{quote(index, safe='')}", params)

    async def get_market_hours(self, *, markets: str, on_date: Optional[str] = None) -> Any:
        if not markets:
            raise MarketDataValidationError(
                f"Missing required 'markets' parameter. Valid values: {', '.join(MARKETS)}"
            )
        requested = [market.strip().lower() for market in markets.split(",")]
        invalid = [market for market in requested if market not in MARKETS]
        if invalid:
            raise MarketDataValidationError(
                f"Invalid market(s): {', '.join(invalid)}. Valid values: {', '.join(MARKETS)}"
            )

        params = {"markets": ",".join(requested)}
        if on_date:
            params["date"] = validate_market_date(on_date)
        return await self._fetch("markets", params)

    async def _fetch(self, path: str, params: Dict[str, str]) -> Any:
        request = UpstreamRequest(url=f"{self._base_url}/{path}", params=params)
        body = await self._tokens.call(request)
        try:
            return json.loads(body)
        except ValueError as exc:
            raise UpstreamApiError(502, "Upstream returned a non-JSON body.") from exc


__all__ = [
    "MARKETS",
    "MOVER_FREQUENCIES",
    "MOVER_INDEXES",
    "MOVER_SORTS",
    "MarketDataService",
    "MarketDataValidationError",
    "normalize_mover_index",
    "validate_market_date",
]
