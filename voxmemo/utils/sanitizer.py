"""Redaction helpers that keep credentials and PII out of logs and responses.

Every message that leaves the pipeline (log records, HTTP error payloads,
persisted failed-recording messages) is passed through ``sanitize_string``.
Provider errors routinely echo request context back, so even messages built
on the success path are sanitized before they reach a sink.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Final, Mapping

OPENAI_KEY_MARKER: Final[str] = "[OPENAI_API_KEY_REDACTED]"
BEARER_MARKER: Final[str] = "Bearer [TOKEN_REDACTED]"
AUTHORIZATION_MARKER: Final[str] = "authorization: [REDACTED]"
API_KEY_MARKER: Final[str] = "api_key=[API_KEY_REDACTED]"
TOKEN_MARKER: Final[str] = "token=[REDACTED]"
EMAIL_MARKER: Final[str] = "[EMAIL_REDACTED]"
PATH_MARKER: Final[str] = "[PATH_REDACTED]"

# Applied in order; authorization headers go first so the scheme and token are
# consumed together.
_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"authorization[\"']?\s*[:=]\s*[\"']?(?:bearer\s+|basic\s+)?[^\s,;\"'}]+",
            re.IGNORECASE,
        ),
        AUTHORIZATION_MARKER,
    ),
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-.~+/]+=*", re.IGNORECASE), BEARER_MARKER),
    (re.compile(r"sk-[A-Za-z0-9_\-]{20,}"), OPENAI_KEY_MARKER),
    (
        re.compile(
            r"(?:api[_-]?key|apikey|api[_-]?secret)[\"'\s:=]+[A-Za-z0-9_\-]{16,}",
            re.IGNORECASE,
        ),
        API_KEY_MARKER,
    ),
    (re.compile(r"\btoken[\"'\s:=]+[A-Za-z0-9_\-]{16,}", re.IGNORECASE), TOKEN_MARKER),
    (re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"), EMAIL_MARKER),
    (
        re.compile(
            r"(?<![\w.:/-])(?:/[\w.-]+){2,}|\b[A-Za-z]:\\(?:[\w.-]+\\)+[\w.-]*"
        ),
        PATH_MARKER,
    ),
)


def sanitize_string(text: str) -> str:
    """Return ``text`` with every credential-shaped substring redacted."""

    if not text:
        return text
    sanitized = text
    for pattern, replacement in _PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def sanitize_object(value: Any) -> Any:
    """Recursively sanitize strings nested inside mappings and sequences."""

    if value is None:
        return None
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    if isinstance(value, Mapping):
        return {key: sanitize_object(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_object(item) for item in value]
    return value


def sanitize_error(error: BaseException | str | None) -> str:
    """Render an exception as ``Type: message`` with secrets removed."""

    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return sanitize_string(error)
    message = str(error)
    rendered = f"{type(error).__name__}: {message}" if message else type(error).__name__
    return sanitize_string(rendered)


def log_error(logger: logging.Logger, message: str, error: Any = None) -> None:
    """Log ``message`` and an optional error payload, both sanitized."""

    _log(logger, logging.ERROR, message, error)


def log_warning(logger: logging.Logger, message: str, data: Any = None) -> None:
    _log(logger, logging.WARNING, message, data)


def _log(logger: logging.Logger, level: int, message: str, payload: Any) -> None:
    safe_message = sanitize_string(message)
    if payload is None:
        logger.log(level, safe_message)
        return
    if isinstance(payload, BaseException):
        rendered = sanitize_error(payload)
    else:
        rendered = sanitize_object(payload)
    logger.log(level, "%s: %s", safe_message, rendered)


class SanitizingFilter(logging.Filter):
    """Logging filter that redacts the fully rendered message of each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            rendered = str(record.msg)
        record.msg = sanitize_string(rendered)
        record.args = None

        if record.exc_info and not record.exc_text:
            record.exc_text = sanitize_string(
                logging.Formatter().formatException(record.exc_info)
            )
        elif record.exc_text:
            record.exc_text = sanitize_string(record.exc_text)
        return True


__all__ = [
    "API_KEY_MARKER",
    "AUTHORIZATION_MARKER",
    "BEARER_MARKER",
    "EMAIL_MARKER",
    "OPENAI_KEY_MARKER",
    "PATH_MARKER",
    "SanitizingFilter",
    "TOKEN_MARKER",
    "log_error",
    "log_warning",
    "sanitize_error",
    "sanitize_object",
    "sanitize_string",
]
