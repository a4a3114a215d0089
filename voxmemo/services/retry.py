"""Exponential backoff around fallible provider calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from voxmemo.config.settings import RetryConfig
from voxmemo.services.errors import PipelineError, should_retry
from voxmemo.utils.sanitizer import log_warning, sanitize_error

logger = logging.getLogger("voxmemo.pipeline")

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 8.0
    should_retry: Callable[[BaseException], bool] = field(default=should_retry, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays cannot be negative")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based), no jitter."""

        return min(self.initial_delay * 2 ** (attempt - 1), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryOrchestrator:
    """Runs an async operation under a :class:`RetryPolicy`."""

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        *,
        label: str = "operation",
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if isinstance(exc, PipelineError):
                    exc.attempts = attempt
                else:
                    exc.retry_attempts = attempt

                if not policy.should_retry(exc) or attempt >= policy.max_attempts:
                    raise

                delay = policy.backoff_delay(attempt)
                log_warning(
                    logger,
                    f"{label} attempt {attempt}/{policy.max_attempts} failed, "
                    f"retrying in {delay:.1f}s",
                    sanitize_error(exc),
                )
                await self._sleep(delay)


def attempts_made(error: BaseException) -> int:
    """Number of attempts the retry loop spent before ``error`` escaped it."""

    if isinstance(error, PipelineError):
        return error.attempts
    return getattr(error, "retry_attempts", 0)


__all__ = ["DEFAULT_RETRY_POLICY", "RetryOrchestrator", "RetryPolicy", "attempts_made"]
