"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse
from .credentials import (
    CredentialStatusResponse,
    CredentialUpdateRequest,
    CredentialVerifyRequest,
    CredentialVerifyResponse,
)
from .failed_recordings import (
    FailedRecordingCount,
    FailedRecordingSummary,
    ReplayAllResponse,
    ReplayResult,
)

__all__ = [
    "CredentialStatusResponse",
    "CredentialUpdateRequest",
    "CredentialVerifyRequest",
    "CredentialVerifyResponse",
    "ErrorResponse",
    "FailedRecordingCount",
    "FailedRecordingSummary",
    "ReplayAllResponse",
    "ReplayResult",
]
