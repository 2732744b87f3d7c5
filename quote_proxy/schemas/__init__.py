"""Public schema exports."""

from .auth import AuthorizationStart, ConnectionResult, OAuthCallbackPayload, ResetResult
from .errors import ErrorEnvelope, ErrorObject

__all__ = [
    "AuthorizationStart",
    "ConnectionResult",
    "ErrorEnvelope",
    "ErrorObject",
    "OAuthCallbackPayload",
    "ResetResult",
]
