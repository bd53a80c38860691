"""OpenTelemetry attribute names and span names for chaos experiments.

Attributes follow a ``chaos.*`` namespace.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Experiment attributes
# ---------------------------------------------------------------------------

CHAOS_EXPERIMENT_ID = "chaos.experiment.id"
CHAOS_EXPERIMENT_NAME = "chaos.experiment.name"
CHAOS_EXPERIMENT_HYPOTHESIS = "chaos.experiment.hypothesis"
CHAOS_STRATEGY_COUNT = "chaos.experiment.strategy_count"
CHAOS_BLAST_SCOPE = "chaos.blast_radius.scope"
CHAOS_BLAST_IMPACT = "chaos.blast_radius.impact_percent"
CHAOS_HYPOTHESIS_VALIDATED = "chaos.result.hypothesis_validated"
CHAOS_KILL_SWITCH_TRIGGERED = "chaos.result.kill_switch_triggered"
CHAOS_RESILIENCE_SCORE = "chaos.result.resilience_score"
CHAOS_VIOLATION_COUNT = "chaos.result.violation_count"

# ---------------------------------------------------------------------------
# Strategy attributes
# ---------------------------------------------------------------------------

CHAOS_STRATEGY_NAME = "chaos.strategy.name"
CHAOS_STRATEGY_CATEGORY = "chaos.strategy.category"
CHAOS_STRATEGY_SEVERITY = "chaos.strategy.severity"
CHAOS_HEALTH_SCORE = "chaos.strategy.health_score"
CHAOS_ROLLBACK_COUNT = "chaos.rollback.count"
CHAOS_ROLLBACK_FAILURES = "chaos.rollback.failures"

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

EXPERIMENT_SPAN = "chaos.experiment"
INJECT_SPAN = "chaos.inject"
ROLLBACK_SPAN = "chaos.rollback"
