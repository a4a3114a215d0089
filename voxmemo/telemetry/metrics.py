"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

PIPELINE_RUNS = Counter(
    "voxmemo_pipeline_runs_total",
    "Voice pipeline runs by final outcome",
    ("outcome",),
)

STAGE_FAILURES = Counter(
    "voxmemo_stage_failures_total",
    "Pipeline failures by the state they happened in and error kind",
    ("state", "kind"),
)

RATE_LIMIT_REFUSALS = Counter(
    "voxmemo_rate_limit_refusals_total",
    "Calls refused admission by a local rate limiter",
    ("endpoint",),
)

FAILED_RECORDINGS_PERSISTED = Counter(
    "voxmemo_failed_recordings_persisted_total",
    "Failed recordings written to the encrypted store",
    ("error_type",),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def observe_pipeline_run(outcome: str) -> None:
    PIPELINE_RUNS.labels(outcome=outcome or "unknown").inc()


def observe_stage_failure(state: str, kind: str) -> None:
    STAGE_FAILURES.labels(state=state or "unknown", kind=kind or "unknown").inc()


def observe_rate_limit_refusal(endpoint: str) -> None:
    RATE_LIMIT_REFUSALS.labels(endpoint=endpoint or "unknown").inc()


def observe_failed_recording(error_type: str) -> None:
    FAILED_RECORDINGS_PERSISTED.labels(error_type=error_type or "unknown").inc()
