"""Transcription stage (Stage 02) of the voice pipeline."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from voxmemo.services.credentials import CredentialResolver
from voxmemo.services.errors import SchemaValidationError
from voxmemo.services.openai_client import OpenAIClient
from voxmemo.services.rate_limiter import TRANSCRIPTION_ENDPOINT, RateLimiter
from voxmemo.services.retry import DEFAULT_RETRY_POLICY, RetryOrchestrator, RetryPolicy

from .gate import GovernedStage
from .types import AudioPayload, TranscriptionResult

logger = logging.getLogger("voxmemo.pipeline")


class TranscriptionStage(GovernedStage):
    """Speech-to-text through the transcription endpoint."""

    endpoint = TRANSCRIPTION_ENDPOINT
    label = "transcription"

    def __init__(
        self,
        client: OpenAIClient,
        limiter: RateLimiter,
        resolver: CredentialResolver,
        retry: RetryOrchestrator | None = None,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        super().__init__(limiter, resolver, retry, policy)
        self.client = client

    async def run(self, payload: AudioPayload) -> TranscriptionResult:
        self.admit()
        return await self.execute(payload)

    async def execute(self, payload: AudioPayload) -> TranscriptionResult:
        """Transcribe an already admitted payload."""

        async def _transcribe(credential: str) -> Mapping[str, Any]:
            return await self.client.transcribe(credential, payload.data, payload.mime_type)

        body = await self.invoke(_transcribe)
        result = _parse_transcription(body)
        logger.info(
            "Transcription complete (%d chars, language=%s)",
            len(result.text),
            result.language,
        )
        return result


def _parse_transcription(body: Mapping[str, Any]) -> TranscriptionResult:
    if not isinstance(body, Mapping) or not isinstance(body.get("text"), str):
        raise SchemaValidationError("Transcription response did not contain text.")
    language = body.get("language")
    return TranscriptionResult(
        text=body["text"].strip(),
        language=language if isinstance(language, str) and language else None,
    )


__all__ = ["TranscriptionStage"]
