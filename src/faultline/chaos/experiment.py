"""Chaos experiment descriptor — strategies plus the checks that guard them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence, Union

from faultline.chaos.strategies.base import ChaosStrategy
from faultline.chaos.types import BlastRadius, BlastScope

# Probes may be plain functions or coroutine functions.
Probe = Callable[[], Union[bool, Awaitable[bool]]]


class KillSwitchAction(Enum):
    """What the kill switch does when it fires."""

    ROLLBACK = "rollback"
    PAUSE = "pause"
    ALERT = "alert"


class KillSwitchTrigger(Enum):
    """Why the kill switch fired."""

    HEALTH_CHECK_FAIL = "health_check_fail"
    RECOVERY_TIMEOUT = "recovery_timeout"
    ERROR_RATE_THRESHOLD = "error_rate_threshold"
    LATENCY_THRESHOLD = "latency_threshold"
    MANUAL = "manual"


@dataclass
class SteadyStateCheck:
    """Baseline health probe run before and after the experiment."""

    name: str
    check: Probe
    timeout_seconds: float = 5.0
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "timeout_seconds": self.timeout_seconds, "description": self.description}


@dataclass
class AbortCondition:
    """Predicate checked before each injection; true stops further injection."""

    name: str
    condition: Probe
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description}


@dataclass
class KillSwitch:
    enabled: bool = True
    action: KillSwitchAction = KillSwitchAction.ROLLBACK
    notify_channels: list[str] = field(default_factory=list)
    trigger_on: list[KillSwitchTrigger] = field(
        default_factory=lambda: [KillSwitchTrigger.HEALTH_CHECK_FAIL, KillSwitchTrigger.RECOVERY_TIMEOUT]
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "action": self.action.value,
            "notify_channels": list(self.notify_channels),
            "trigger_on": [t.value for t in self.trigger_on],
        }


def aggregate_blast_radius(strategies: Sequence[ChaosStrategy]) -> BlastRadius:
    """Combine strategy blast radii: widest scope, union of services,
    highest impact, longest durations."""
    if not strategies:
        return BlastRadius(BlastScope.SINGLE)
    radii = [s.blast_radius for s in strategies]
    services: set[str] = set()
    for r in radii:
        services |= r.affected_services
    return BlastRadius(
        scope=max((r.scope for r in radii), key=lambda s: s.rank),
        affected_services=frozenset(services),
        estimated_impact_percent=max(r.estimated_impact_percent for r in radii),
        max_duration_ms=max(r.max_duration_ms for r in radii),
        rollback_time_ms=max(r.rollback_time_ms for r in radii),
    )


class ChaosExperiment:
    """A hypothesis tested by injecting strategies in order.

    Built by the caller and handed to
    :meth:`faultline.chaos.engine.FaultInjectionEngine.run_experiment`,
    which only reads it.
    """

    def __init__(
        self,
        name: str,
        strategies: Sequence[ChaosStrategy],
        hypothesis: str = "",
        steady_state_checks: Sequence[SteadyStateCheck] | None = None,
        abort_conditions: Sequence[AbortCondition] | None = None,
        kill_switch: KillSwitch | None = None,
        blast_radius: BlastRadius | None = None,
        experiment_id: str | None = None,
    ) -> None:
        self.id = experiment_id or uuid.uuid4().hex[:12]
        self.name = name
        self.hypothesis = hypothesis
        self.strategies = list(strategies)
        self.steady_state_checks = list(steady_state_checks or [])
        self.abort_conditions = list(abort_conditions or [])
        self.kill_switch = kill_switch or KillSwitch()
        self.blast_radius = blast_radius or aggregate_blast_radius(self.strategies)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "hypothesis": self.hypothesis,
            "strategies": [s.to_dict() for s in self.strategies],
            "steady_state_checks": [c.to_dict() for c in self.steady_state_checks],
            "abort_conditions": [a.to_dict() for a in self.abort_conditions],
            "kill_switch": self.kill_switch.to_dict(),
            "blast_radius": self.blast_radius.to_dict(),
        }
