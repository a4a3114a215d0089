"""Token bucket admission control for the downstream AI endpoints.

Each governed endpoint owns one :class:`RateLimiter`. The limiter never sleeps:
``acquire`` answers "admitted or not" for the current instant and callers use
``get_time_until_tokens_available`` to tell the user how long to wait.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from voxmemo.config.settings import RateLimitConfig
from voxmemo.utils.sanitizer import log_error

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

TRANSCRIPTION_ENDPOINT = "whisper"
EXTRACTION_ENDPOINT = "gpt-4o"


class RateLimiter:
    """Token bucket with continuous refill."""

    def __init__(
        self,
        max_tokens: float,
        refill_rate: float,
        *,
        initial_tokens: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")

        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        start = self.max_tokens if initial_tokens is None else float(initial_tokens)
        self._tokens = min(self.max_tokens, max(0.0, start))
        self._last_refill = clock()

    @classmethod
    def per_minute(
        cls,
        requests_per_minute: float,
        burst: float | None = None,
        *,
        clock: Clock = time.monotonic,
    ) -> "RateLimiter":
        """Build a limiter from a requests-per-minute budget."""

        return cls(
            max_tokens=burst if burst is not None else requests_per_minute,
            refill_rate=requests_per_minute / 60.0,
            clock=clock,
        )

    @property
    def tokens(self) -> float:
        """Raw token count as of the last refill (no refill applied)."""

        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def acquire(self, cost: float = 1) -> bool:
        """Deduct ``cost`` tokens if available and report whether the call is admitted."""

        if cost <= 0 or cost > self.max_tokens:
            # Caller bug: refuse without touching the bucket.
            log_error(
                logger,
                "Invalid token cost requested",
                ValueError(f"cost={cost} max_tokens={self.max_tokens}"),
            )
            return False

        self._refill()
        if self._tokens >= cost:
            self._tokens -= cost
            return True
        return False

    def available_tokens(self) -> int:
        self._refill()
        return math.floor(self._tokens)

    def get_time_until_tokens_available(self, tokens: float = 1) -> int:
        """Milliseconds until ``tokens`` can be acquired, or 0 when already available."""

        self._refill()
        if self._tokens >= tokens:
            return 0
        deficit = tokens - self._tokens
        return math.ceil(deficit / self.refill_rate * 1000)

    def reset(self, tokens: float | None = None) -> None:
        self._tokens = self.max_tokens if tokens is None else min(self.max_tokens, float(tokens))
        self._last_refill = self._clock()

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_tokens={self.max_tokens}, refill_rate={self.refill_rate}, "
            f"tokens={self._tokens:.3f})"
        )


@dataclass(frozen=True)
class RateLimiters:
    """The pair of independent limiters owned by the pipeline."""

    transcription: RateLimiter
    extraction: RateLimiter


def build_rate_limiters(
    config: RateLimitConfig,
    *,
    clock: Clock = time.monotonic,
) -> RateLimiters:
    """Create one limiter per governed endpoint; they never share state."""

    return RateLimiters(
        transcription=RateLimiter.per_minute(
            config.requests_per_minute, config.burst, clock=clock
        ),
        extraction=RateLimiter.per_minute(
            config.requests_per_minute, config.burst, clock=clock
        ),
    )


__all__ = [
    "EXTRACTION_ENDPOINT",
    "RateLimiter",
    "RateLimiters",
    "TRANSCRIPTION_ENDPOINT",
    "build_rate_limiters",
]
