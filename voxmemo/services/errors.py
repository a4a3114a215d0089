"""Error taxonomy shared by every stage of the voice pipeline.

Each error carries an explicit :class:`ErrorKind` so retry decisions and HTTP
mapping are a lookup over the enum instead of a chain of ``isinstance`` checks.
Messages are sanitized on construction; nothing that reaches ``str(exc)`` can
carry a credential.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping

from voxmemo.utils.sanitizer import sanitize_object, sanitize_string


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_INVALID = "credential_invalid"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    SCHEMA = "schema"


# Exhaustive over ErrorKind.
_RETRYABLE: dict[ErrorKind, bool] = {
    ErrorKind.VALIDATION: False,
    ErrorKind.CREDENTIAL_MISSING: False,
    ErrorKind.CREDENTIAL_INVALID: False,
    ErrorKind.RATE_LIMIT: False,
    ErrorKind.TRANSIENT: True,
    ErrorKind.SCHEMA: False,
}
if set(_RETRYABLE) != set(ErrorKind):
    raise RuntimeError("Retry table does not cover every ErrorKind")


class PipelineError(RuntimeError):
    """Base class for every failure the pipeline knows how to classify."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        self.message = sanitize_string(message)
        self.details: dict[str, Any] = dict(sanitize_object(dict(details or {})))
        self.attempts = 0
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return is_retryable_kind(self.kind)

    @property
    def user_message(self) -> str:
        return self.message


class AudioValidationError(PipelineError):
    """Raised when captured audio fails the pre-flight checks."""

    kind = ErrorKind.VALIDATION


class CredentialMissingError(PipelineError):
    """Raised when no credential source yields an API key."""

    kind = ErrorKind.CREDENTIAL_MISSING

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message
            or "OpenAI API key is not configured. Please add your API key in Settings.",
            **kwargs,
        )


class CredentialInvalidError(PipelineError):
    """Raised when the provider rejects the configured API key."""

    kind = ErrorKind.CREDENTIAL_INVALID

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message
            or "The configured OpenAI API key was rejected. Please update your API key in Settings.",
            **kwargs,
        )


class RateLimitError(PipelineError):
    """Raised when a call is refused admission; surfaced, never retried."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        *,
        retry_after_ms: int,
        endpoint: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        merged = {"retry_after_ms": retry_after_ms, "endpoint": endpoint}
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.retry_after_ms = max(0, int(retry_after_ms))
        self.endpoint = endpoint

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.retry_after_ms / 1000)


class TransientAPIError(PipelineError):
    """Network failure, timeout or provider 5xx; retried up to the policy limit."""

    kind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        network: bool = False,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        self.network = network


class SchemaValidationError(PipelineError):
    """Raised when a provider response violates the structured-content contract."""

    kind = ErrorKind.SCHEMA


def is_retryable_kind(kind: ErrorKind) -> bool:
    return _RETRYABLE[kind]


def should_retry(error: BaseException) -> bool:
    """Default retry predicate.

    Classified errors are decided by their kind. Anything outside the taxonomy
    is assumed to be a transient fault (connection reset, timeout) and retried.
    """

    if isinstance(error, PipelineError):
        return is_retryable_kind(error.kind)
    return True


__all__ = [
    "AudioValidationError",
    "CredentialInvalidError",
    "CredentialMissingError",
    "ErrorKind",
    "PipelineError",
    "RateLimitError",
    "SchemaValidationError",
    "TransientAPIError",
    "is_retryable_kind",
    "should_retry",
]
