"""Tests for the chaos experiment library."""

import pytest

from faultline.chaos.experiment import (
    AbortCondition,
    KillSwitch,
    KillSwitchAction,
    SteadyStateCheck,
)
from faultline.chaos.library import ChaosLibrary, ExperimentTemplate, StrategySpec
from faultline.chaos.strategies import NetworkLatencyStrategy, UnknownStrategyError

BUILTIN_IDS = {
    "network-degradation",
    "dependency-outage",
    "zone-evacuation",
    "application-faults",
    "resource-exhaustion",
}


class TestChaosLibrary:
    def test_builtins_loaded(self) -> None:
        lib = ChaosLibrary()
        assert {t.template_id for t in lib.list_templates()} == BUILTIN_IDS

    def test_every_builtin_instantiates(self) -> None:
        lib = ChaosLibrary()
        for template_id in BUILTIN_IDS:
            exp = lib.instantiate(template_id)
            assert exp is not None
            assert exp.strategies
            assert not any(s.is_active for s in exp.strategies)

    def test_instantiate_builds_fresh_strategies(self) -> None:
        lib = ChaosLibrary()
        a = lib.instantiate("network-degradation")
        b = lib.instantiate("network-degradation")
        assert a.id != b.id
        assert all(x is not y for x, y in zip(a.strategies, b.strategies))

    def test_overrides(self) -> None:
        lib = ChaosLibrary()
        check = SteadyStateCheck("api_up", lambda: True)
        abort = AbortCondition("budget", lambda: False)
        ks = KillSwitch(action=KillSwitchAction.PAUSE)
        exp = lib.instantiate(
            "network-degradation",
            name="custom",
            steady_state_checks=[check],
            abort_conditions=[abort],
            kill_switch=ks,
            strategy_params={"network_latency": {"latency_ms": 50}},
        )
        assert exp.name == "custom"
        assert exp.steady_state_checks == [check]
        assert exp.abort_conditions == [abort]
        assert exp.kill_switch is ks
        latency = exp.strategies[0]
        assert isinstance(latency, NetworkLatencyStrategy)
        assert latency.latency_ms == 50

    def test_template_kill_switch_action(self) -> None:
        exp = ChaosLibrary().instantiate("resource-exhaustion")
        assert exp.kill_switch.action is KillSwitchAction.ALERT

    def test_unknown_template(self) -> None:
        assert ChaosLibrary().instantiate("nope") is None

    def test_filtering(self) -> None:
        lib = ChaosLibrary()
        assert [t.template_id for t in lib.list_templates(category="network")] == ["network-degradation"]
        assert [t.template_id for t in lib.list_templates(severity="critical")] == ["zone-evacuation"]
        assert [t.template_id for t in lib.list_templates(tag="dns")] == ["zone-evacuation"]

    def test_categories(self) -> None:
        assert ChaosLibrary().categories() == ["application", "infrastructure", "network", "resource"]

    def test_register_custom(self) -> None:
        lib = ChaosLibrary()
        lib.register(ExperimentTemplate(
            template_id="slow-db",
            name="Slow DB",
            description="Delays database calls",
            category="application",
            strategies=[StrategySpec("slow_response", {"delay_ms": 100, "target_services": ["db"]})],
        ))
        exp = lib.instantiate("slow-db")
        assert exp.strategies[0].name == "slow_response"

    def test_bad_strategy_name_surfaces_on_instantiate(self) -> None:
        lib = ChaosLibrary()
        lib.register(ExperimentTemplate("broken", "Broken", "", "network", strategies=[StrategySpec("nope")]))
        with pytest.raises(UnknownStrategyError):
            lib.instantiate("broken")

    def test_to_dict(self) -> None:
        d = ChaosLibrary().to_dict()
        assert len(d["templates"]) == 5
        t = d["templates"]["dependency-outage"]
        assert t["strategies"][0]["name"] == "dependency_timeout"
        assert t["kill_switch_action"] == "rollback"
