"""Pydantic request models for the faultline REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from faultline.chaos.experiment import KillSwitch, KillSwitchAction, KillSwitchTrigger


class ArmRequest(BaseModel):
    """Arm the engine. The code must match exactly."""

    confirmation_code: str


class StrategyRequest(BaseModel):
    """A registry strategy name plus constructor parameters."""

    name: str = Field(..., description="Registry name, e.g. 'network_latency'")
    params: dict[str, Any] = Field(default_factory=dict)


class KillSwitchRequest(BaseModel):
    enabled: bool = True
    action: KillSwitchAction = KillSwitchAction.ROLLBACK
    notify_channels: list[str] = Field(default_factory=list)
    trigger_on: list[KillSwitchTrigger] | None = None

    def build(self) -> KillSwitch:
        kill_switch = KillSwitch(
            enabled=self.enabled,
            action=self.action,
            notify_channels=list(self.notify_channels),
        )
        if self.trigger_on is not None:
            kill_switch.trigger_on = list(self.trigger_on)
        return kill_switch


class ExperimentRequest(BaseModel):
    """Run an ad-hoc experiment built from registry strategies."""

    name: str
    hypothesis: str = ""
    strategies: list[StrategyRequest] = Field(default_factory=list)
    kill_switch: KillSwitchRequest | None = None


class TemplateRunRequest(BaseModel):
    """Run a library template, optionally overriding parts of it."""

    name: str | None = None
    strategy_params: dict[str, dict[str, Any]] = Field(default_factory=dict)
    kill_switch: KillSwitchRequest | None = None
