"""Typed payloads exchanged by the scheduled refresh entry points."""

from __future__ import annotations

from typing import Optional, TypedDict


class RefreshOutcome(TypedDict):
    """Result of one proactive refresh attempt."""

    refreshed: bool
    error: Optional[str]
    detail: Optional[str]
    attempted_at: str


__all__ = ["RefreshOutcome"]
