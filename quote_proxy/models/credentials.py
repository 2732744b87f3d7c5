"""
Domain models for the shared credential pair and token endpoint responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
LAST_REFRESHED_KEY = "last_refreshed"
REFRESH_LOCK_KEY = "refresh_lock"

# Keys owned by the credential pair; the lock is transient and not part of it.
CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, LAST_REFRESHED_KEY)


class TokenGrant(BaseModel):
    """Successful token endpoint payload."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1, repr=False)
    refresh_token: Optional[str] = Field(
        None,
        repr=False,
        description="Absent when the authorization server does not rotate the refresh token.",
    )
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = Field(None, repr=False)


class TokenStatus(BaseModel):
    """Snapshot of the shared credential state, safe to expose over HTTP."""

    authorized: bool
    last_refreshed: Optional[datetime] = None
    refresh_in_progress: bool = False


__all__ = [
    "ACCESS_TOKEN_KEY",
    "CREDENTIAL_KEYS",
    "LAST_REFRESHED_KEY",
    "REFRESH_LOCK_KEY",
    "REFRESH_TOKEN_KEY",
    "TokenGrant",
    "TokenStatus",
]
