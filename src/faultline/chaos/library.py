"""Named, reusable experiment templates for common failure drills."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from faultline.chaos.experiment import (
    AbortCondition,
    ChaosExperiment,
    KillSwitch,
    KillSwitchAction,
    SteadyStateCheck,
)
from faultline.chaos.strategies import ChaosStrategy, create_strategy


@dataclass(frozen=True)
class StrategySpec:
    """Registry name plus constructor parameters for one strategy."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)

    def build(self, **overrides: Any) -> ChaosStrategy:
        return create_strategy(self.name, **{**self.params, **overrides})

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "params": dict(self.params)}


@dataclass
class ExperimentTemplate:
    """A reusable chaos experiment template.

    Templates hold strategy specs rather than strategy instances, so every
    instantiation gets fresh, inactive strategies.
    """

    template_id: str
    name: str
    description: str
    category: str  # network, application, resource, infrastructure
    severity: str = "medium"  # low, medium, high, critical
    hypothesis: str = ""
    strategies: list[StrategySpec] = field(default_factory=list)
    kill_switch_action: KillSwitchAction = KillSwitchAction.ROLLBACK
    tags: list[str] = field(default_factory=list)

    def instantiate(self, **overrides: Any) -> ChaosExperiment:
        """Create a concrete experiment from this template.

        Recognised overrides: ``name``, ``hypothesis``, ``steady_state_checks``,
        ``abort_conditions``, ``kill_switch`` and ``strategy_params`` (a mapping
        of strategy name to parameter overrides).
        """
        strategy_params: dict[str, dict[str, Any]] = overrides.get("strategy_params") or {}
        steady_state_checks: Sequence[SteadyStateCheck] | None = overrides.get("steady_state_checks")
        abort_conditions: Sequence[AbortCondition] | None = overrides.get("abort_conditions")
        return ChaosExperiment(
            name=overrides.get("name", self.name),
            hypothesis=overrides.get("hypothesis", self.hypothesis),
            strategies=[s.build(**strategy_params.get(s.name, {})) for s in self.strategies],
            steady_state_checks=steady_state_checks,
            abort_conditions=abort_conditions,
            kill_switch=overrides.get("kill_switch") or KillSwitch(action=self.kill_switch_action),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "hypothesis": self.hypothesis,
            "strategies": [s.to_dict() for s in self.strategies],
            "kill_switch_action": self.kill_switch_action.value,
            "tags": self.tags,
        }


class ChaosLibrary:
    """Template catalogue, seeded with the built-in drills.

    Registering a template under an existing id replaces it.
    """

    def __init__(self) -> None:
        self._templates: dict[str, ExperimentTemplate] = {}
        self._seed()

    def _seed(self) -> None:
        builtins = [
            ExperimentTemplate(
                template_id="network-degradation",
                name="Network Degradation",
                description="Adds latency with jitter and a little packet loss in front of the gateway.",
                category="network",
                severity="medium",
                hypothesis="Clients stay within their latency SLO when the gateway link degrades",
                strategies=[
                    StrategySpec("network_latency", {"latency_ms": 500, "jitter_ms": 100, "target_urls": ["api-gateway"]}),
                    StrategySpec("packet_loss", {"loss_percent": 5, "target_urls": ["api-gateway"]}),
                ],
                tags=["network", "latency", "packet-loss"],
            ),
            ExperimentTemplate(
                template_id="dependency-outage",
                name="Dependency Outage",
                description="Times out a downstream dependency while part of the cache is cold.",
                category="infrastructure",
                severity="high",
                hypothesis="Callers fall back gracefully when a dependency stops answering",
                strategies=[
                    StrategySpec("dependency_timeout", {"dependency_name": "payments-api", "timeout_ms": 2_000}),
                    StrategySpec("cache_invalidation", {"cache_name": "session-cache", "invalidation_type": "partial"}),
                ],
                tags=["dependency", "timeout", "cache"],
            ),
            ExperimentTemplate(
                template_id="zone-evacuation",
                name="Zone Evacuation",
                description="Fails an availability zone and its internal DNS.",
                category="infrastructure",
                severity="critical",
                hypothesis="Traffic shifts to healthy zones without user-visible errors",
                strategies=[
                    StrategySpec("zone_failure", {"zone_name": "zone-a", "services_in_zone": ["api", "worker"]}),
                    StrategySpec("dns_failure", {"target_domains": ["zone-a.internal"]}),
                ],
                tags=["zone", "dns", "failover"],
            ),
            ExperimentTemplate(
                template_id="application-faults",
                name="Application Faults",
                description="Sprinkles exceptions, slow responses and malformed payloads over a service.",
                category="application",
                severity="medium",
                hypothesis="Error handling keeps the service answering under partial failure",
                strategies=[
                    StrategySpec("exception_injection", {"error_rate": 0.1, "target_services": ["api"]}),
                    StrategySpec("slow_response", {"delay_ms": 250, "target_services": ["api"]}),
                    StrategySpec("malformed_response", {"mode": "random", "target_services": ["api"]}),
                ],
                tags=["application", "errors", "latency"],
            ),
            ExperimentTemplate(
                template_id="resource-exhaustion",
                name="Resource Exhaustion",
                description="Leaks memory at a steady rate while a core is pinned.",
                category="resource",
                severity="high",
                hypothesis="The service degrades gracefully under memory and CPU pressure",
                strategies=[
                    StrategySpec("memory_leak", {"rate_mb_per_minute": 30, "max_leak_mb": 64}),
                    StrategySpec("cpu_spike", {"cores": 1, "duration_ms": 10_000}),
                ],
                kill_switch_action=KillSwitchAction.ALERT,
                tags=["resource", "memory", "cpu"],
            ),
        ]
        for template in builtins:
            self.register(template)

    def register(self, template: ExperimentTemplate) -> None:
        self._templates[template.template_id] = template

    def get(self, template_id: str) -> ExperimentTemplate | None:
        return self._templates.get(template_id)

    def list_templates(
        self,
        category: str | None = None,
        severity: str | None = None,
        tag: str | None = None,
    ) -> list[ExperimentTemplate]:
        """Templates in registration order, narrowed by any filter given."""
        return [
            t
            for t in self._templates.values()
            if (category is None or t.category == category)
            and (severity is None or t.severity == severity)
            and (tag is None or tag in t.tags)
        ]

    def instantiate(self, template_id: str, **overrides: Any) -> ChaosExperiment | None:
        """Create a concrete experiment from a template, or None if unknown."""
        template = self.get(template_id)
        if template is None:
            return None
        return template.instantiate(**overrides)

    def categories(self) -> list[str]:
        return sorted({t.category for t in self._templates.values()})

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": self.categories(),
            "templates": {tid: t.to_dict() for tid, t in self._templates.items()},
        }
