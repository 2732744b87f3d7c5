"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Schwab.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthorizationStart(BaseModel):
    authorization_url: str
    state: str


class ConnectionResult(BaseModel):
    status: str = Field(..., description="'connected' once the first token pair is stored.")
    redirect_to: Optional[str] = None


class ResetResult(BaseModel):
    status: str = "cleared"


__all__ = ["AuthorizationStart", "ConnectionResult", "OAuthCallbackPayload", "ResetResult"]
