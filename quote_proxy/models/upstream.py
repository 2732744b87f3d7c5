"""
Request descriptor for calls proxied to the market-data API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class UpstreamRequest:
    """An outbound call, independent of the credential that will authorize it."""

    url: str
    method: str = "GET"
    params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Optional[Any] = None


__all__ = ["UpstreamRequest"]
