"""Logging utilities for todoapi.

Every module logs under the ``todoapi`` hierarchy (``todoapi.auth``,
``todoapi.state``, ...). Secrets such as state tokens and session ids are
only ever logged as short prefixes.
"""

from __future__ import annotations

import logging
import sys

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .config import LogSettings


class _LoggerHolder:
    """Holder for the root package logger instance."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the todoapi logger instance.

    Returns
    -------
    logging.Logger
        The todoapi logger configured with a stream handler.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger("todoapi")
        logger.setLevel(logging.INFO)

        # Only add handler if none exists
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            formatter = logging.Formatter("%(asctime)s %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def configure_logging(settings: LogSettings) -> logging.Logger:
    """Apply level and format from settings to the todoapi logger.

    Parameters
    ----------
    settings : LogSettings
        The logging configuration section.

    Returns
    -------
    logging.Logger
        The configured logger.
    """
    logger = get_logger()
    logger.setLevel(getattr(logging, settings.level))
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(settings.format))
    return logger


def token_prefix(value: str | None, length: int = 8) -> str:
    """Render a secret as a short prefix safe for info-level logs.

    Parameters
    ----------
    value : str or None
        The secret (state token, session id, ...).
    length : int
        Number of leading characters to keep.

    Returns
    -------
    str
        ``"abcd1234..."``, or ``"MISSING"`` when there is no value.
    """
    if not value:
        return "MISSING"
    return f"{value[:length]}..."


# Keys that should be redacted in log output for security
_SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "password",
        "token",
        "code",
        "credential",
        "cookie",
    }
)


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Redact sensitive values from data for safe logging.

    Recursively traverses dicts/lists and replaces values for keys
    that match sensitive patterns with "[REDACTED]".

    Parameters
    ----------
    data : dict or list or str or None
        The data to redact.
    max_depth : int, optional
        Maximum recursion depth to prevent infinite loops (default: 5).

    Returns
    -------
    dict or list or str or None
        A copy of the data with sensitive values redacted.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"

    if data is None:
        return None

    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            key_lower = k.lower() if isinstance(k, str) else str(k).lower()
            if any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS):
                result[k] = "[REDACTED]"
            else:
                result[k] = redact_sensitive_data(v, max_depth - 1)
        return result

    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]

    return data
