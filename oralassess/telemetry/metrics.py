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

RESPONSE_PROCESSING_COUNTER = Counter(
    "response_processing_total",
    "Recorded answers processed by the response pipeline, by final status",
    ("status",),
)

SCORING_RUN_COUNTER = Counter(
    "scoring_runs_total",
    "Submission scoring runs, by final scoring status",
    ("status",),
)

SCORING_DURATION = Histogram(
    "scoring_run_duration_seconds",
    "Wall-clock duration of a submission scoring run",
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

MODEL_CALL_COUNTER = Counter(
    "language_model_calls_total",
    "Language model invocations, by operation and outcome",
    ("operation", "outcome"),
)

MODEL_LATENCY = Histogram(
    "language_model_call_duration_seconds",
    "Round-trip time of one Bedrock converse call",
    ("model_id",),
    buckets=(0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 15.0, 30.0, 60.0),
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


def record_response_processed(status: str) -> None:
    RESPONSE_PROCESSING_COUNTER.labels(status=status).inc()


def record_scoring_run(status: str, duration_seconds: float) -> None:
    SCORING_RUN_COUNTER.labels(status=status).inc()
    SCORING_DURATION.observe(max(duration_seconds, 0))


def record_model_call(operation: str, outcome: str) -> None:
    MODEL_CALL_COUNTER.labels(operation=operation, outcome=outcome).inc()


def observe_model_latency(model_id: str, duration_seconds: float) -> None:
    MODEL_LATENCY.labels(model_id=model_id).observe(max(duration_seconds, 0))
