"""Scheduled token refresh package.

Keeps the shared Schwab access token fresh outside the request path, either
from an EventBridge-triggered Lambda or a long-running local worker.
"""

from __future__ import annotations

from typing import Any


def __getattr__(name: str) -> Any:
    if name == "lambda_handler":
        from .handler import lambda_handler as loaded_lambda_handler

        return loaded_lambda_handler
    raise AttributeError(name)


__all__ = ["lambda_handler"]
