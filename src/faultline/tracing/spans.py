"""Helpers that set chaos attributes on OpenTelemetry spans.

Callers get correctly named spans without remembering attribute keys.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry.trace import Span, Tracer

from faultline.tracing.conventions import (
    CHAOS_BLAST_IMPACT,
    CHAOS_BLAST_SCOPE,
    CHAOS_EXPERIMENT_HYPOTHESIS,
    CHAOS_EXPERIMENT_ID,
    CHAOS_EXPERIMENT_NAME,
    CHAOS_HEALTH_SCORE,
    CHAOS_HYPOTHESIS_VALIDATED,
    CHAOS_KILL_SWITCH_TRIGGERED,
    CHAOS_RESILIENCE_SCORE,
    CHAOS_STRATEGY_CATEGORY,
    CHAOS_STRATEGY_COUNT,
    CHAOS_STRATEGY_NAME,
    CHAOS_STRATEGY_SEVERITY,
    CHAOS_VIOLATION_COUNT,
    EXPERIMENT_SPAN,
    INJECT_SPAN,
)

if TYPE_CHECKING:
    from faultline.chaos.experiment import ChaosExperiment
    from faultline.chaos.strategies.base import ChaosStrategy
    from faultline.chaos.types import ExperimentResult, HealthCheckResult


def experiment_attributes(experiment: ChaosExperiment) -> dict[str, Any]:
    """Span attributes describing an experiment before it runs."""
    return {
        CHAOS_EXPERIMENT_ID: experiment.id,
        CHAOS_EXPERIMENT_NAME: experiment.name,
        CHAOS_EXPERIMENT_HYPOTHESIS: experiment.hypothesis,
        CHAOS_STRATEGY_COUNT: len(experiment.strategies),
        CHAOS_BLAST_SCOPE: experiment.blast_radius.scope.value,
        CHAOS_BLAST_IMPACT: experiment.blast_radius.estimated_impact_percent,
    }


def start_experiment_span(tracer: Tracer, experiment: ChaosExperiment) -> Span:
    """Start a span representing one experiment run.

    Args:
        tracer: OpenTelemetry tracer instance.
        experiment: The experiment about to run.

    Returns:
        A started ``Span`` with experiment attributes.
    """
    return tracer.start_span(
        f"{EXPERIMENT_SPAN}:{experiment.name}",
        attributes=experiment_attributes(experiment),
    )


def start_injection_span(tracer: Tracer, strategy: ChaosStrategy) -> Span:
    """Start a span representing a single strategy injection."""
    return tracer.start_span(
        f"{INJECT_SPAN}:{strategy.name}",
        attributes={
            CHAOS_STRATEGY_NAME: strategy.name,
            CHAOS_STRATEGY_CATEGORY: strategy.category.value,
            CHAOS_STRATEGY_SEVERITY: strategy.severity.value,
        },
    )


def record_health(span: Span, health: HealthCheckResult) -> None:
    span.set_attribute(CHAOS_HEALTH_SCORE, health.overall_score)


def record_result(span: Span, result: ExperimentResult) -> None:
    """Copy the experiment verdict onto its span."""
    span.set_attribute(CHAOS_HYPOTHESIS_VALIDATED, result.hypothesis_validated)
    span.set_attribute(CHAOS_KILL_SWITCH_TRIGGERED, result.kill_switch_triggered)
    span.set_attribute(CHAOS_RESILIENCE_SCORE, result.resilience_score)
    span.set_attribute(CHAOS_VIOLATION_COUNT, len(result.violations))
