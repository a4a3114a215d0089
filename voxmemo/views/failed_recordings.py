"""Schemas for the failed-recordings endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from voxmemo.domain.models import FailedRecording, FailedRecordingErrorType

from .common import ErrorResponse


class FailedRecordingSummary(BaseModel):
    """List entry; the audio itself is only returned by the detail endpoint."""

    id: str
    created_at: datetime = Field(alias="createdAt")
    failed_at: datetime = Field(alias="failedAt")
    transcript: Optional[str] = None
    language: Optional[str] = None
    error_message: str = Field(alias="errorMessage")
    error_type: FailedRecordingErrorType = Field(alias="errorType")
    retry_count: int = Field(alias="retryCount")
    last_retry_at: Optional[datetime] = Field(default=None, alias="lastRetryAt")
    audio_data_length: int = Field(alias="audioDataLength")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_recording(cls, recording: FailedRecording) -> "FailedRecordingSummary":
        return cls(
            id=recording.id,
            created_at=recording.created_at,
            failed_at=recording.failed_at,
            transcript=recording.transcript,
            language=recording.language,
            error_message=recording.error_message,
            error_type=recording.error_type,
            retry_count=recording.retry_count,
            last_retry_at=recording.last_retry_at,
            audio_data_length=len(recording.audio_data),
        )


class FailedRecordingCount(BaseModel):
    count: int


class ReplayResult(BaseModel):
    recording_id: str
    succeeded: bool
    item: Optional[dict[str, Any]] = None
    error: Optional[ErrorResponse] = None


class ReplayAllResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: list[ReplayResult]
