"""Token bucket behaviour under a hand-driven clock."""

from __future__ import annotations

import pytest

from voxmemo.config.settings import RateLimitConfig
from voxmemo.services.rate_limiter import RateLimiter, build_rate_limiters


def test_default_budget_allows_burst_then_refuses(clock):
    limiter = RateLimiter.per_minute(3, 5, clock=clock)

    assert [limiter.acquire() for _ in range(5)] == [True] * 5
    assert limiter.acquire() is False
    assert limiter.refill_rate == pytest.approx(0.05)


def test_tokens_refill_continuously(clock):
    limiter = RateLimiter(max_tokens=2, refill_rate=1.0, clock=clock)
    assert limiter.acquire(2)
    assert limiter.acquire() is False

    clock.advance(0.5)
    assert limiter.acquire() is False
    clock.advance(0.5)
    assert limiter.acquire() is True


def test_refill_never_exceeds_capacity(clock):
    limiter = RateLimiter(max_tokens=5, refill_rate=1.0, initial_tokens=0, clock=clock)

    clock.advance(10_000)

    assert limiter.available_tokens() == 5


def test_time_until_tokens_available(clock):
    limiter = RateLimiter(max_tokens=3, refill_rate=1.0, clock=clock)
    assert limiter.get_time_until_tokens_available() == 0

    limiter.acquire(3)
    assert limiter.get_time_until_tokens_available() == 1000
    assert limiter.get_time_until_tokens_available(2) == 2000

    clock.advance(0.25)
    assert limiter.get_time_until_tokens_available() == 750


def test_default_rate_reports_twenty_seconds_per_token(clock):
    limiter = RateLimiter.per_minute(3, 5, clock=clock)
    for _ in range(5):
        limiter.acquire()

    assert 19_999 <= limiter.get_time_until_tokens_available() <= 20_000


@pytest.mark.parametrize("cost", [0, -1, 6])
def test_invalid_cost_is_refused_without_touching_tokens(clock, cost):
    limiter = RateLimiter(max_tokens=5, refill_rate=1.0, clock=clock)

    assert limiter.acquire(cost) is False
    assert limiter.available_tokens() == 5


def test_available_tokens_is_floored(clock):
    limiter = RateLimiter(max_tokens=5, refill_rate=1.0, initial_tokens=0, clock=clock)
    clock.advance(2.9)

    assert limiter.available_tokens() == 2


def test_reset_restores_capacity(clock):
    limiter = RateLimiter(max_tokens=4, refill_rate=1.0, clock=clock)
    limiter.acquire(4)

    limiter.reset()
    assert limiter.available_tokens() == 4

    limiter.reset(1)
    assert limiter.available_tokens() == 1


@pytest.mark.parametrize("max_tokens, refill_rate", [(0, 1.0), (5, 0), (-1, 1.0)])
def test_constructor_rejects_non_positive_parameters(max_tokens, refill_rate):
    with pytest.raises(ValueError):
        RateLimiter(max_tokens=max_tokens, refill_rate=refill_rate)


def test_endpoint_limiters_do_not_share_state(clock):
    limiters = build_rate_limiters(RateLimitConfig(requests_per_minute=3, burst=5), clock=clock)

    while limiters.transcription.acquire():
        pass

    assert limiters.transcription.available_tokens() == 0
    assert limiters.extraction.available_tokens() == 5
