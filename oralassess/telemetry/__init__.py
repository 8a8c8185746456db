"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    MODEL_CALL_COUNTER,
    MODEL_LATENCY,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    RESPONSE_PROCESSING_COUNTER,
    SCORING_DURATION,
    SCORING_RUN_COUNTER,
    observe_model_latency,
    observe_request,
    record_model_call,
    record_response_processed,
    record_scoring_run,
)

__all__ = [
    "ERROR_COUNTER",
    "MODEL_CALL_COUNTER",
    "MODEL_LATENCY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "RESPONSE_PROCESSING_COUNTER",
    "SCORING_DURATION",
    "SCORING_RUN_COUNTER",
    "observe_model_latency",
    "observe_request",
    "record_model_call",
    "record_response_processed",
    "record_scoring_run",
]
