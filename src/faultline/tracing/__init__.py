"""OpenTelemetry tracing for chaos experiments."""

from faultline.tracing.spans import (
    experiment_attributes,
    record_health,
    record_result,
    start_experiment_span,
    start_injection_span,
)

__all__ = [
    "experiment_attributes",
    "record_health",
    "record_result",
    "start_experiment_span",
    "start_injection_span",
]
