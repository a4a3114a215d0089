"""Common response schemas."""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: str
    kind: Optional[str] = None
    retry_after_seconds: Optional[int] = None
    failed_recording_id: Optional[str] = None

