"""Typed containers shared across the voice pipeline.

These dataclasses live in their own module so the stages (`ingestion`,
`transcription`, `extraction`, `flow`) can import them without creating
circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class AudioPayload:
    """A finalized audio buffer handed over by the capture layer."""

    data: bytes
    mime_type: str
    size_bytes: int = -1
    duration_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.size_bytes < 0:
            object.__setattr__(self, "size_bytes", len(self.data or b""))

    @property
    def base_mime_type(self) -> str:
        """MIME type without parameters (``audio/webm;codecs=opus`` -> ``audio/webm``)."""

        return (self.mime_type or "").split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the audio pre-flight checks."""

    valid: bool
    error: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TranscriptionResult:
    """Speech-to-text output."""

    text: str
    language: Optional[str] = None


@dataclass(frozen=True)
class PromptBundle:
    system_prompt: str
    user_prompt: str
