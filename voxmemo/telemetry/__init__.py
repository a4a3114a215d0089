"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    FAILED_RECORDINGS_PERSISTED,
    PIPELINE_RUNS,
    RATE_LIMIT_REFUSALS,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    STAGE_FAILURES,
    observe_failed_recording,
    observe_pipeline_run,
    observe_rate_limit_refusal,
    observe_request,
    observe_stage_failure,
)

__all__ = [
    "ERROR_COUNTER",
    "FAILED_RECORDINGS_PERSISTED",
    "PIPELINE_RUNS",
    "RATE_LIMIT_REFUSALS",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "STAGE_FAILURES",
    "observe_failed_recording",
    "observe_pipeline_run",
    "observe_rate_limit_refusal",
    "observe_request",
    "observe_stage_failure",
]
