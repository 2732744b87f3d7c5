"""
Logging utilities for the FastAPI application and background workers.

Provides a consistent logging format and keeps configured secrets out of
emitted records.
"""

import logging
import sys
from typing import Iterable


class SecretRedactingFilter(logging.Filter):
    """Replace known secret values in log messages with a placeholder."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = tuple(secret for secret in secrets if secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, "***")
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", *, secrets: Iterable[str] = ()) -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    redactor = SecretRedactingFilter(secrets)
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)
    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["SecretRedactingFilter", "configure_logging"]
