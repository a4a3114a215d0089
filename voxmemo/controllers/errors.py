"""Translate pipeline errors into HTTP responses."""

from __future__ import annotations

from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse

from voxmemo.middleware.logging import ERROR_KIND_HEADER
from voxmemo.services.errors import ErrorKind, PipelineError, RateLimitError
from voxmemo.views import ErrorResponse

# Exhaustive over ErrorKind.
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CREDENTIAL_MISSING: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.CREDENTIAL_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.TRANSIENT: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.SCHEMA: status.HTTP_422_UNPROCESSABLE_ENTITY,
}
if set(STATUS_BY_KIND) != set(ErrorKind):
    raise RuntimeError("HTTP status table does not cover every ErrorKind")


def error_body(
    exc: Optional[BaseException],
    *,
    failed_recording_id: Optional[str] = None,
) -> ErrorResponse:
    if isinstance(exc, PipelineError):
        return ErrorResponse(
            detail=exc.user_message,
            kind=exc.kind.value,
            retry_after_seconds=exc.retry_after_seconds if isinstance(exc, RateLimitError) else None,
            failed_recording_id=failed_recording_id,
        )
    return ErrorResponse(detail="Internal server error", failed_recording_id=failed_recording_id)


def pipeline_error_response(
    exc: Optional[BaseException],
    *,
    failed_recording_id: Optional[str] = None,
) -> JSONResponse:
    body = error_body(exc, failed_recording_id=failed_recording_id)
    headers: dict[str, str] = {}
    if isinstance(exc, PipelineError):
        status_code = STATUS_BY_KIND[exc.kind]
        headers[ERROR_KIND_HEADER] = exc.kind.value
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after_seconds)
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


__all__ = ["STATUS_BY_KIND", "error_body", "pipeline_error_response"]
