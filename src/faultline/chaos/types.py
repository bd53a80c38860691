"""Shared value types for fault strategies and experiment results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class BlastScope(Enum):
    """How far a fault reaches, from a single process to a whole region."""

    SINGLE = "single"
    SERVICE = "service"
    ZONE = "zone"
    REGION = "region"

    @property
    def rank(self) -> int:
        return _SCOPE_ORDER.index(self)


_SCOPE_ORDER = [BlastScope.SINGLE, BlastScope.SERVICE, BlastScope.ZONE, BlastScope.REGION]


class FaultCategory(Enum):
    """Strategy families."""

    NETWORK = "network"
    APPLICATION = "application"
    RESOURCE = "resource"
    INFRASTRUCTURE = "infrastructure"


class Severity(Enum):
    """Fault severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CheckStatus(Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class BlastRadius:
    """Declared scope and estimated impact of a fault.

    ``max_duration_ms`` and ``rollback_time_ms`` are expectations used for
    reporting; nothing enforces them.
    """

    scope: BlastScope
    affected_services: frozenset[str] = frozenset()
    estimated_impact_percent: float = 0.0
    max_duration_ms: int = 0
    rollback_time_ms: int = 0

    def __post_init__(self) -> None:
        # frozen: go through object.__setattr__ to normalise inputs
        object.__setattr__(self, "affected_services", frozenset(self.affected_services))
        object.__setattr__(
            self,
            "estimated_impact_percent",
            min(max(float(self.estimated_impact_percent), 0.0), 100.0),
        )

    @classmethod
    def of(
        cls,
        scope: BlastScope,
        services: Iterable[str] = (),
        impact: float = 0.0,
        max_duration_ms: int = 0,
        rollback_time_ms: int = 0,
    ) -> BlastRadius:
        return cls(scope, frozenset(services), impact, max_duration_ms, rollback_time_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "affected_services": sorted(self.affected_services),
            "estimated_impact_percent": self.estimated_impact_percent,
            "max_duration_ms": self.max_duration_ms,
            "rollback_time_ms": self.rollback_time_ms,
        }


@dataclass(frozen=True)
class InjectionResult:
    """Outcome of starting a fault."""

    success: bool
    strategy_name: str
    message: str
    start_time: float = field(default_factory=time.time)
    affected_endpoints: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy_name": self.strategy_name,
            "message": self.message,
            "start_time": self.start_time,
            "affected_endpoints": list(self.affected_endpoints),
        }


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of undoing a fault."""

    success: bool
    strategy_name: str
    recovery_time_ms: float
    health_restored: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy_name": self.strategy_name,
            "recovery_time_ms": round(self.recovery_time_ms, 1),
            "health_restored": self.health_restored,
            "message": self.message,
        }


@dataclass(frozen=True)
class HealthCheckItem:
    name: str
    status: CheckStatus
    message: str = ""
    response_time_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name, "status": self.status.value, "message": self.message}
        if self.response_time_ms is not None:
            d["response_time_ms"] = self.response_time_ms
        return d


@dataclass(frozen=True)
class HealthCheckResult:
    """Point-in-time health snapshot."""

    healthy: bool
    checks: tuple[HealthCheckItem, ...]
    overall_score: int
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_checks(cls, checks: Iterable[HealthCheckItem]) -> HealthCheckResult:
        """Score a set of checks: healthy only if every check passes."""
        items = tuple(checks)
        if not items:
            return cls.no_active_faults()
        passed = sum(1 for c in items if c.status is CheckStatus.PASS)
        return cls(
            healthy=passed == len(items),
            checks=items,
            overall_score=round(passed / len(items) * 100),
        )

    @classmethod
    def no_active_faults(cls) -> HealthCheckResult:
        return cls(
            healthy=True,
            checks=(HealthCheckItem("no_active_faults", CheckStatus.PASS, "No active faults"),),
            overall_score=100,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "timestamp": self.timestamp,
            "checks": [c.to_dict() for c in self.checks],
            "overall_score": self.overall_score,
        }


@dataclass
class StrategyMetrics:
    """Traffic metrics observed while a fault was active.

    The engine does not observe traffic itself, so these stay at zero
    unless a harness fills them in.
    """

    requests_total: int = 0
    requests_failed: int = 0
    requests_timed_out: int = 0
    error_rate: float = 0.0
    p50_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    circuit_breaker_trips: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests_total": self.requests_total,
            "requests_failed": self.requests_failed,
            "requests_timed_out": self.requests_timed_out,
            "error_rate": self.error_rate,
            "p50_latency_ms": self.p50_latency_ms,
            "p99_latency_ms": self.p99_latency_ms,
            "circuit_breaker_trips": self.circuit_breaker_trips,
        }


@dataclass
class StrategyResult:
    """Aggregated record for one strategy within a run."""

    strategy_name: str
    injection: InjectionResult
    health_check: HealthCheckResult
    recovery: RecoveryResult | None = None
    metrics: StrategyMetrics = field(default_factory=StrategyMetrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_name": self.strategy_name,
            "injection": self.injection.to_dict(),
            "recovery": self.recovery.to_dict() if self.recovery else None,
            "health_check": self.health_check.to_dict(),
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class ExperimentResult:
    """Outcome of one experiment run, appended to the engine history."""

    experiment_id: str
    experiment_name: str
    duration_ms: float
    strategies: list[StrategyResult]
    hypothesis_validated: bool
    blast_radius_contained: bool
    kill_switch_triggered: bool
    resilience_score: int
    recommendations: list[str] = field(default_factory=list)
    violations: list[str] = field(default_factory=list)
    aborted_by: str | None = None
    certificate_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "experiment_name": self.experiment_name,
            "timestamp": self.timestamp,
            "duration_ms": round(self.duration_ms, 1),
            "strategies": [s.to_dict() for s in self.strategies],
            "hypothesis_validated": self.hypothesis_validated,
            "blast_radius_contained": self.blast_radius_contained,
            "kill_switch_triggered": self.kill_switch_triggered,
            "resilience_score": self.resilience_score,
            "recommendations": list(self.recommendations),
            "violations": list(self.violations),
            "aborted_by": self.aborted_by,
            "certificate_id": self.certificate_id,
        }
