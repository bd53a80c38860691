"""Engine configuration model."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Exact token ``FaultInjectionEngine.arm()`` requires before it injects anything.
ARM_CONFIRMATION_CODE = "CHAOS_ENABLED_I_KNOW_WHAT_IM_DOING"


class EngineConfig(BaseModel):
    """Settings fixed for the lifetime of a ``FaultInjectionEngine``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_concurrent_strategies: int = Field(default=3, ge=1)
    health_check_interval_seconds: float = Field(default=5.0, gt=0.0)
    kill_switch_enabled: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level
