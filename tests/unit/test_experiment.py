"""Tests for experiment descriptors — kill switch, checks, blast radius."""

from faultline.chaos.experiment import (
    AbortCondition,
    ChaosExperiment,
    KillSwitch,
    KillSwitchAction,
    KillSwitchTrigger,
    SteadyStateCheck,
    aggregate_blast_radius,
)
from faultline.chaos.strategies import (
    DatabaseFailoverStrategy,
    NetworkLatencyStrategy,
    ZoneFailureStrategy,
)
from faultline.chaos.types import BlastRadius, BlastScope


class TestKillSwitch:
    def test_defaults(self) -> None:
        ks = KillSwitch()
        assert ks.enabled
        assert ks.action is KillSwitchAction.ROLLBACK
        assert ks.trigger_on == [KillSwitchTrigger.HEALTH_CHECK_FAIL, KillSwitchTrigger.RECOVERY_TIMEOUT]

    def test_to_dict(self) -> None:
        d = KillSwitch(action=KillSwitchAction.ALERT, notify_channels=["ops"]).to_dict()
        assert d["action"] == "alert"
        assert d["notify_channels"] == ["ops"]
        assert "health_check_fail" in d["trigger_on"]


class TestAggregateBlastRadius:
    def test_empty(self) -> None:
        assert aggregate_blast_radius([]).scope is BlastScope.SINGLE

    def test_widest_scope_and_union(self) -> None:
        br = aggregate_blast_radius([
            NetworkLatencyStrategy(latency_ms=10, target_urls=["api"]),
            ZoneFailureStrategy("zone-a", ["api", "worker"]),
        ])
        assert br.scope is BlastScope.ZONE
        assert br.affected_services == frozenset({"api", "worker"})
        assert br.estimated_impact_percent == 100.0

    def test_region_wins(self) -> None:
        br = aggregate_blast_radius([
            ZoneFailureStrategy("zone-a", ["api"]),
            DatabaseFailoverStrategy("orders-db", failover_time_ms=0),
        ])
        assert br.scope is BlastScope.REGION


class TestChaosExperiment:
    def test_creation(self) -> None:
        exp = ChaosExperiment(
            name="latency",
            strategies=[NetworkLatencyStrategy(latency_ms=500)],
            hypothesis="p99 stays under 1s",
        )
        assert len(exp.id) == 12
        assert exp.steady_state_checks == []
        assert exp.abort_conditions == []
        assert exp.kill_switch.enabled
        assert exp.blast_radius.scope is BlastScope.SERVICE

    def test_explicit_blast_radius(self) -> None:
        br = BlastRadius.of(BlastScope.REGION, ["everything"], 100)
        exp = ChaosExperiment("big", strategies=[], blast_radius=br, experiment_id="fixed")
        assert exp.blast_radius is br
        assert exp.id == "fixed"

    def test_ids_unique(self) -> None:
        assert ChaosExperiment("a", []).id != ChaosExperiment("a", []).id

    def test_to_dict(self) -> None:
        exp = ChaosExperiment(
            name="latency",
            strategies=[NetworkLatencyStrategy(latency_ms=500)],
            steady_state_checks=[SteadyStateCheck("api_up", lambda: True, description="API answers")],
            abort_conditions=[AbortCondition("error_budget", lambda: False)],
        )
        d = exp.to_dict()
        assert d["name"] == "latency"
        assert d["strategies"][0]["name"] == "network_latency"
        assert d["steady_state_checks"][0] == {"name": "api_up", "timeout_seconds": 5.0, "description": "API answers"}
        assert d["abort_conditions"][0]["name"] == "error_budget"
        assert d["kill_switch"]["action"] == "rollback"
