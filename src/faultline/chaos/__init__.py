"""Chaos engine — fault strategies, experiments, and the injection engine."""

from .config import ARM_CONFIRMATION_CODE, EngineConfig
from .engine import (
    ActiveFault, AdmissionError, ChaosEngineError, EngineState,
    FaultInjectionEngine, SteadyStateViolation, recommendations_for, score_experiment,
)
from .experiment import (
    AbortCondition, ChaosExperiment, KillSwitch, KillSwitchAction,
    KillSwitchTrigger, SteadyStateCheck, aggregate_blast_radius,
)
from .library import ChaosLibrary, ExperimentTemplate, StrategySpec
from .loader import load_engine_config
from .types import (
    BlastRadius, BlastScope, CheckStatus, ExperimentResult, FaultCategory,
    HealthCheckItem, HealthCheckResult, InjectionResult, RecoveryResult,
    Severity, StrategyMetrics, StrategyResult,
)

__all__ = [
    "ARM_CONFIRMATION_CODE", "EngineConfig", "load_engine_config",
    "ActiveFault", "AdmissionError", "ChaosEngineError", "EngineState",
    "FaultInjectionEngine", "SteadyStateViolation", "recommendations_for", "score_experiment",
    "AbortCondition", "ChaosExperiment", "KillSwitch", "KillSwitchAction",
    "KillSwitchTrigger", "SteadyStateCheck", "aggregate_blast_radius",
    "ChaosLibrary", "ExperimentTemplate", "StrategySpec",
    "BlastRadius", "BlastScope", "CheckStatus", "ExperimentResult", "FaultCategory",
    "HealthCheckItem", "HealthCheckResult", "InjectionResult", "RecoveryResult",
    "Severity", "StrategyMetrics", "StrategyResult",
]
