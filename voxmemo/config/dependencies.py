"""Process-wide service wiring.

Everything with shared mutable state (the two rate limiters, the failed
recording store and the HTTP connection pool) is built exactly once here and
handed to the stages; nothing else in the package keeps module-level instances.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from voxmemo.pipelines.audio import (
    AudioValidator,
    ExtractionStage,
    PipelineOrchestrator,
    TranscriptionStage,
)
from voxmemo.pipelines.audio.ingestion import DurationProbe
from voxmemo.services.credentials import (
    CredentialResolver,
    SecureValueStore,
    build_default_resolver,
    build_secure_store,
)
from voxmemo.services.crypto import FernetEncryptor
from voxmemo.services.failed_recordings import FailedRecordingStore
from voxmemo.services.openai_client import OpenAIClient, create_http_client
from voxmemo.services.rate_limiter import RateLimiters, build_rate_limiters
from voxmemo.services.retry import RetryOrchestrator, RetryPolicy

from .settings import Settings, settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    http_client: httpx.AsyncClient
    client: OpenAIClient
    limiters: RateLimiters
    secure_store: SecureValueStore
    resolver: CredentialResolver
    store: FailedRecordingStore
    validator: AudioValidator
    orchestrator: PipelineOrchestrator

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_container(
    config: Settings = settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    duration_probe: Optional[DurationProbe] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """Assemble the pipeline from configuration."""

    http_client = http_client or create_http_client(config.openai)
    client = OpenAIClient(http_client, config.openai)
    limiters = build_rate_limiters(config.rate_limit, clock=clock)
    secure_store = build_secure_store(config)
    resolver = build_default_resolver(config, secure_store=secure_store)
    cipher = FernetEncryptor(config.storage.encryption_secret.get_secret_value())
    store = FailedRecordingStore(config.storage.failed_recordings_path, cipher)
    validator = AudioValidator(config.audio, duration_probe=duration_probe)

    policy = RetryPolicy.from_config(config.retry)
    transcription = TranscriptionStage(
        client, limiters.transcription, resolver, RetryOrchestrator(sleep=sleep), policy
    )
    extraction = ExtractionStage(
        client, limiters.extraction, resolver, RetryOrchestrator(sleep=sleep), policy
    )
    orchestrator = PipelineOrchestrator(
        validator,
        transcription,
        extraction,
        store,
        persist_rate_limited=config.pipeline.persist_rate_limited,
    )
    logger.info(
        "Pipeline ready: %s/min per endpoint (burst %s), %s attempts",
        config.rate_limit.requests_per_minute,
        config.rate_limit.burst,
        policy.max_attempts,
    )
    return ServiceContainer(
        settings=config,
        http_client=http_client,
        client=client,
        limiters=limiters,
        secure_store=secure_store,
        resolver=resolver,
        store=store,
        validator=validator,
        orchestrator=orchestrator,
    )


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Return the process container, building it on first use."""

    global _container
    if _container is None:
        _container = build_container()
    return _container


async def dispose_container() -> None:
    global _container
    if _container is not None:
        await _container.aclose()
        _container = None


__all__ = ["ServiceContainer", "build_container", "dispose_container", "get_container"]
