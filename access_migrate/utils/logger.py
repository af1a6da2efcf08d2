"""Structured logging utilities."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from typing import Any, Dict, Optional

SENSITIVE_KEYS = ("password", "pwd", "secret", "token")
REDACTED = "***REDACTED***"

_SECRET_PATTERN = re.compile(r"\b(Password|Pwd|User Id|UID)\s*=\s*[^;]+", re.IGNORECASE)
_PATH_PATTERN = re.compile(r"\b(Data Source|DBQ|Server)\s*=\s*([^;]+)", re.IGNORECASE)


def mask_connection_string(connection_string: Optional[str]) -> str:
    """
    Mask credentials in an ODBC connection string for display.

    Args:
        connection_string: Raw connection string

    Returns:
        Connection string with credentials replaced by ``***`` and long
        data source paths shortened
    """
    if not connection_string:
        return "(not configured)"

    masked = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}=***", connection_string)

    def _shorten(match: re.Match) -> str:
        key, value = match.group(1), match.group(2)
        if len(value) > 10:
            return f"{key}={value[:10]}..."
        return match.group(0)

    return _PATH_PATTERN.sub(_shorten, masked)


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Hide secrets in structured log context.

    Values under secret-like keys are replaced, nested dicts are walked and
    strings that carry ODBC credentials are masked.
    """
    clean: Dict[str, Any] = {}
    for key, value in data.items():
        if any(word in key.lower() for word in SENSITIVE_KEYS):
            clean[key] = REDACTED
        elif isinstance(value, dict):
            clean[key] = redact(value)
        elif isinstance(value, str) and _SECRET_PATTERN.search(value):
            clean[key] = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}=***", value)
        else:
            clean[key] = value
    return clean


def _default_level() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


class StructuredLogger:
    """Logger that appends keyword context to messages as JSON."""

    def __init__(self, name: str, level: Optional[int] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level if level is not None else _default_level())

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.logger.addHandler(handler)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    def log_migration_event(
        self,
        event: str,
        table: str,
        rows_migrated: int = 0,
        duration: float = 0.0,
        **kwargs: Any,
    ) -> None:
        """Log a table or run milestone as a single JSON object."""
        payload = {
            "event": event,
            "table": table,
            "rows_migrated": rows_migrated,
            "duration_seconds": round(duration, 2),
            **redact(kwargs),
        }
        self.logger.info(json.dumps(payload, default=str))

    def _log(self, level: int, message: str, context: Dict[str, Any]) -> None:
        if context:
            message = f"{message} {json.dumps(redact(context), default=str)}"
        self.logger.log(level, message)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)
