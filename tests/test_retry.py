"""Retry orchestration: backoff schedule and the terminal error classes."""

from __future__ import annotations

import asyncio

import pytest

from voxmemo.services.errors import (
    AudioValidationError,
    CredentialInvalidError,
    CredentialMissingError,
    ErrorKind,
    RateLimitError,
    SchemaValidationError,
    TransientAPIError,
    is_retryable_kind,
    should_retry,
)
from voxmemo.services.retry import DEFAULT_RETRY_POLICY, RetryOrchestrator, RetryPolicy, attempts_made


class FlakyOperation:
    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_recovers_after_transient_failures(sleep):
    operation = FlakyOperation([TransientAPIError("503"), TransientAPIError("503")])
    retry = RetryOrchestrator(sleep=sleep)

    result = asyncio.run(retry.run(operation))

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.calls == [1.0, 2.0]


def test_exhausted_retries_propagate_with_attempt_count(sleep):
    operation = FlakyOperation([TransientAPIError("down")] * 5)
    retry = RetryOrchestrator(sleep=sleep)

    with pytest.raises(TransientAPIError) as excinfo:
        asyncio.run(retry.run(operation, DEFAULT_RETRY_POLICY))

    assert operation.calls == 3
    assert excinfo.value.attempts == 3
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.parametrize(
    "error",
    [
        RateLimitError("slow down", retry_after_ms=1500, endpoint="whisper"),
        SchemaValidationError("bad shape"),
        CredentialMissingError(),
        CredentialInvalidError(),
        AudioValidationError("empty"),
    ],
)
def test_terminal_errors_are_not_retried(sleep, error):
    operation = FlakyOperation([error])
    retry = RetryOrchestrator(sleep=sleep)

    with pytest.raises(type(error)) as excinfo:
        asyncio.run(retry.run(operation))

    assert operation.calls == 1
    assert excinfo.value.attempts == 1
    assert sleep.calls == []


def test_unclassified_errors_are_treated_as_transient(sleep):
    operation = FlakyOperation([ConnectionResetError("reset by peer")])

    assert asyncio.run(RetryOrchestrator(sleep=sleep).run(operation)) == "ok"
    assert sleep.calls == [1.0]


def test_unclassified_errors_carry_their_own_attempt_count(sleep):
    retry = RetryOrchestrator(sleep=sleep)
    exhausted = FlakyOperation([ConnectionResetError("reset")] * 3)
    immediate = FlakyOperation([ConnectionResetError("reset")], result="ok")

    with pytest.raises(ConnectionResetError) as excinfo:
        asyncio.run(retry.run(exhausted))
    asyncio.run(retry.run(immediate))

    assert attempts_made(excinfo.value) == 3
    assert attempts_made(TransientAPIError("never retried")) == 0
    assert attempts_made(ValueError("never retried")) == 0


def test_backoff_doubles_and_caps_without_jitter():
    policy = RetryPolicy(max_attempts=6, initial_delay=1.0, max_delay=8.0)

    assert [policy.backoff_delay(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 8.0]


def test_single_attempt_policy_never_sleeps(sleep):
    operation = FlakyOperation([TransientAPIError("down")])
    policy = RetryPolicy(max_attempts=1)

    with pytest.raises(TransientAPIError):
        asyncio.run(RetryOrchestrator(sleep=sleep).run(operation, policy))
    assert sleep.calls == []


def test_policy_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_only_transient_kind_is_retryable():
    assert {kind for kind in ErrorKind if is_retryable_kind(kind)} == {ErrorKind.TRANSIENT}
    assert should_retry(TransientAPIError("x")) is True
    assert should_retry(RateLimitError("x", retry_after_ms=0, endpoint="gpt-4o")) is False
    assert should_retry(RuntimeError("x")) is True
