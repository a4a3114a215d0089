"""Audio ingestion and pre-flight validation (Stage 01 of the voice pipeline).

Validation runs before any quota is spent: size, MIME type and (optionally)
duration are checked against the configured limits, short-circuiting on the
first failure. Every result carries the observed details so callers can log
them without a second pass.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import os
import subprocess
import tempfile
from typing import Awaitable, Callable, Final, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from voxmemo.config.settings import AudioValidationConfig
from voxmemo.services.errors import AudioValidationError

from .types import AudioPayload, ValidationResult

logger = logging.getLogger("voxmemo.pipeline")

DurationProbe = Callable[[AudioPayload], Awaitable[float]]

DEFAULT_MIME_TYPE: Final[str] = "audio/webm"
_DATA_URL_PREFIX: Final[str] = "data:"


class FFprobeDurationProbe:
    """Decode media duration with ``ffprobe`` in a worker thread."""

    def __init__(self, binary: str = "ffprobe") -> None:
        self._binary = binary

    async def __call__(self, payload: AudioPayload) -> float:
        return await run_in_threadpool(self._probe_sync, payload.data)

    def _probe_sync(self, audio_bytes: bytes) -> float:
        # ffprobe needs a seekable input for most containers.
        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio_bytes)
            tmp_path = tmp_file.name

        try:
            process = subprocess.run(
                [
                    self._binary,
                    "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    tmp_path,
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except FileNotFoundError as exc:
            raise RuntimeError(f"{self._binary} is not installed") from exc
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            raise RuntimeError(f"Failed to load audio metadata: {error_msg.strip()}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        output = process.stdout.decode("utf-8", errors="replace").strip()
        try:
            return float(output)
        except ValueError as exc:
            raise RuntimeError(f"Unreadable audio duration: {output!r}") from exc


class AudioValidator:
    """Check an :class:`AudioPayload` against the configured constraints."""

    def __init__(
        self,
        config: AudioValidationConfig,
        duration_probe: Optional[DurationProbe] = None,
    ) -> None:
        self.config = config
        self._probe = duration_probe or FFprobeDurationProbe(config.ffprobe_binary)

    async def validate(self, payload: Optional[AudioPayload]) -> ValidationResult:
        if payload is None:
            return ValidationResult(valid=False, error="Audio payload is missing")

        details: dict = {"fileSize": payload.size_bytes, "mimeType": payload.mime_type or "unknown"}

        if payload.size_bytes <= 0 or not payload.data:
            return ValidationResult(valid=False, error="Audio payload is empty", details=details)

        allowed = [mime.lower() for mime in self.config.allowed_mime_types]
        if not payload.base_mime_type or payload.base_mime_type not in allowed:
            return ValidationResult(
                valid=False,
                error=f"Invalid audio format. Allowed types: {', '.join(allowed)}",
                details=details,
            )

        if payload.size_bytes > self.config.max_file_size:
            return ValidationResult(
                valid=False,
                error=(
                    f"Audio file size ({format_file_size(payload.size_bytes)}) exceeds maximum "
                    f"allowed size ({format_file_size(self.config.max_file_size)})"
                ),
                details=details,
            )

        if not self.config.checks_duration:
            return ValidationResult(valid=True, details=details)

        try:
            duration = payload.duration_seconds
            if duration is None:
                duration = await self._probe(payload)
        except Exception as exc:
            return ValidationResult(
                valid=False,
                error=f"Failed to validate audio duration: {exc}",
                details=details,
            )

        details["duration"] = duration
        if not self._duration_in_bounds(duration):
            return ValidationResult(
                valid=False,
                error=(
                    f"Audio duration ({duration:.1f}s) does not meet constraints "
                    f"({', '.join(self._describe_bounds())})"
                ),
                details=details,
            )
        return ValidationResult(valid=True, details=details)

    async def validate_or_raise(self, payload: Optional[AudioPayload]) -> ValidationResult:
        result = await self.validate(payload)
        if not result.valid:
            raise AudioValidationError(result.error or "Audio validation failed", details=result.details)
        return result

    def _duration_in_bounds(self, duration: float) -> bool:
        if self.config.min_duration is not None and duration < self.config.min_duration:
            return False
        if self.config.max_duration is not None and duration > self.config.max_duration:
            return False
        return True

    def _describe_bounds(self) -> list[str]:
        constraints = []
        if self.config.min_duration is not None:
            constraints.append(f"minimum {self.config.min_duration:g}s")
        if self.config.max_duration is not None:
            constraints.append(f"maximum {self.config.max_duration:g}s")
        return constraints


def resolve_content_type(audio_file: UploadFile) -> str:
    """Use the declared content type, guessing from the filename when absent."""

    content_type = audio_file.content_type
    if (not content_type or content_type == "application/octet-stream") and audio_file.filename:
        guessed_type, _ = mimetypes.guess_type(audio_file.filename)
        content_type = guessed_type or content_type
    return content_type or DEFAULT_MIME_TYPE


async def read_audio_payload(audio_file: UploadFile) -> AudioPayload:
    """Load the upload fully into memory; validation happens later."""

    content_type = resolve_content_type(audio_file)
    audio_bytes = await audio_file.read()
    await audio_file.close()
    return AudioPayload(data=audio_bytes, mime_type=content_type)


def encode_audio_data(payload: AudioPayload) -> str:
    """Encode audio as a base64 data URL that keeps the MIME type."""

    encoded = base64.b64encode(payload.data).decode("ascii")
    return f"{_DATA_URL_PREFIX}{payload.mime_type or DEFAULT_MIME_TYPE};base64,{encoded}"


def decode_audio_data(audio_data: str) -> AudioPayload:
    """Inverse of :func:`encode_audio_data`; bare base64 is assumed to be WebM."""

    mime_type = DEFAULT_MIME_TYPE
    encoded = audio_data.strip()
    if encoded.startswith(_DATA_URL_PREFIX):
        header, _, encoded = encoded.partition(",")
        mime_type = header[len(_DATA_URL_PREFIX):].removesuffix(";base64") or DEFAULT_MIME_TYPE
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AudioValidationError("Stored audio data is not valid base64") from exc
    return AudioPayload(data=raw, mime_type=mime_type)


def format_file_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


__all__ = [
    "AudioValidator",
    "DurationProbe",
    "FFprobeDurationProbe",
    "decode_audio_data",
    "encode_audio_data",
    "format_file_size",
    "read_audio_payload",
    "resolve_content_type",
]
