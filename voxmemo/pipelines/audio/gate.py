"""Admission control shared by the two remote stages.

Every remote call goes through the same three steps, in order: take a token
from the stage's own limiter (refusing immediately when empty), resolve the
credential, then hand the call to the retry orchestrator. Rate-limit refusals
happen before the credential lookup so a refused run never touches a store.
"""

from __future__ import annotations

import logging
import math
from typing import Awaitable, Callable, TypeVar

from voxmemo.services.credentials import CredentialResolver
from voxmemo.services.errors import RateLimitError
from voxmemo.services.rate_limiter import RateLimiter
from voxmemo.services.retry import DEFAULT_RETRY_POLICY, RetryOrchestrator, RetryPolicy
from voxmemo.telemetry import observe_rate_limit_refusal

logger = logging.getLogger("voxmemo.pipeline")

T = TypeVar("T")


def rate_limit_message(label: str, retry_after_ms: int) -> str:
    seconds = max(1, math.ceil(retry_after_ms / 1000))
    plural = "" if seconds == 1 else "s"
    return f"Rate limit exceeded for {label}. Please wait {seconds} second{plural} and try again."


class GovernedStage:
    """Base class for a stage that calls a rate-limited, authenticated endpoint."""

    endpoint: str = ""
    label: str = ""

    def __init__(
        self,
        limiter: RateLimiter,
        resolver: CredentialResolver,
        retry: RetryOrchestrator | None = None,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self.limiter = limiter
        self.resolver = resolver
        self.retry = retry or RetryOrchestrator()
        self.policy = policy

    def admit(self) -> None:
        """Take one token or raise :class:`RateLimitError` without waiting."""

        if self.limiter.acquire(1):
            return
        retry_after_ms = self.limiter.get_time_until_tokens_available(1)
        logger.info("%s refused by rate limiter, retry in %dms", self.label, retry_after_ms)
        observe_rate_limit_refusal(self.endpoint)
        raise RateLimitError(
            rate_limit_message(self.label, retry_after_ms),
            retry_after_ms=retry_after_ms,
            endpoint=self.endpoint,
        )

    async def invoke(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """Resolve the credential and run ``operation`` under the retry policy.

        Callers must have been admitted first; see :meth:`admit`.
        """

        credential = await self.resolver.resolve()
        return await self.retry.run(
            lambda: operation(credential),
            self.policy,
            label=self.label,
        )


__all__ = ["GovernedStage", "rate_limit_message"]
