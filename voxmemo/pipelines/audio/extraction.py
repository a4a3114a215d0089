"""Structured extraction stage (Stage 03) of the voice pipeline.

Turns a transcript into title, tags, summary, key facts and the intent payload
through a strict JSON-schema chat completion. The response is re-validated
locally by :mod:`voxmemo.services.response_contract`; a contract violation is
terminal and is not retried.
"""

from __future__ import annotations

import logging
from typing import Optional

from voxmemo.domain.models import ExtractedContent
from voxmemo.services.credentials import CredentialResolver
from voxmemo.services.openai_client import OpenAIClient
from voxmemo.services.rate_limiter import EXTRACTION_ENDPOINT, RateLimiter
from voxmemo.services.response_contract import VOICE_ITEM_JSON_SCHEMA, parse_extraction_response
from voxmemo.services.retry import DEFAULT_RETRY_POLICY, RetryOrchestrator, RetryPolicy

from .gate import GovernedStage
from .prompts import build_extraction_prompts

logger = logging.getLogger("voxmemo.pipeline")


class ExtractionStage(GovernedStage):
    endpoint = EXTRACTION_ENDPOINT
    label = "content processing"

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

    async def run(self, transcript: str, language: Optional[str] = None) -> ExtractedContent:
        self.admit()
        return await self.execute(transcript, language)

    async def execute(self, transcript: str, language: Optional[str] = None) -> ExtractedContent:
        prompts = build_extraction_prompts(transcript, language)

        async def _extract(credential: str) -> ExtractedContent:
            raw = await self.client.generate_structured(
                credential,
                system_prompt=prompts.system_prompt,
                user_prompt=prompts.user_prompt,
                schema=VOICE_ITEM_JSON_SCHEMA,
            )
            return parse_extraction_response(raw)

        content = await self.invoke(_extract)
        logger.info("Extraction complete: intent=%s tags=%d", content.intent.value, len(content.tags))
        return content


__all__ = ["ExtractionStage"]
