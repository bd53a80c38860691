"""Fault strategies, grouped by family, and a registry keyed by strategy name."""

from __future__ import annotations

from typing import Any

from faultline.chaos.strategies.application import (
    ApplicationStrategy,
    DeadlockStrategy,
    ExceptionInjectionStrategy,
    InjectedFaultError,
    MalformedResponseStrategy,
    SlowResponseStrategy,
)
from faultline.chaos.strategies.base import ChaosStrategy, FaultBackend
from faultline.chaos.strategies.infrastructure import (
    CacheInvalidationStrategy,
    DatabaseFailoverStrategy,
    DependencyTimeoutError,
    DependencyTimeoutStrategy,
    InfrastructureStrategy,
    NodeCrashStrategy,
    ZoneFailureStrategy,
)
from faultline.chaos.strategies.network import (
    BandwidthThrottleStrategy,
    ConnectionResetStrategy,
    DnsFailureStrategy,
    NetworkLatencyStrategy,
    NetworkStrategy,
    PacketLossStrategy,
)
from faultline.chaos.strategies.resource import (
    CpuSpikeStrategy,
    MemoryLeakStrategy,
    MemoryPressureStrategy,
    ResourceStrategy,
)


class UnknownStrategyError(KeyError):
    """Raised when a strategy name is not in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown strategy '{name}'. Valid: {sorted(STRATEGY_REGISTRY)}")

    def __str__(self) -> str:
        return self.args[0]


STRATEGY_REGISTRY: dict[str, type[ChaosStrategy]] = {
    cls.name: cls
    for cls in (
        NetworkLatencyStrategy,
        PacketLossStrategy,
        DnsFailureStrategy,
        ConnectionResetStrategy,
        BandwidthThrottleStrategy,
        ExceptionInjectionStrategy,
        SlowResponseStrategy,
        MalformedResponseStrategy,
        DeadlockStrategy,
        MemoryLeakStrategy,
        MemoryPressureStrategy,
        CpuSpikeStrategy,
        NodeCrashStrategy,
        ZoneFailureStrategy,
        DependencyTimeoutStrategy,
        DatabaseFailoverStrategy,
        CacheInvalidationStrategy,
    )
}


def create_strategy(name: str, **params: Any) -> ChaosStrategy:
    """Build a strategy by registry name, e.g. ``create_strategy("packet_loss", loss_percent=5)``."""
    cls = STRATEGY_REGISTRY.get(name)
    if cls is None:
        raise UnknownStrategyError(name)
    return cls(**params)


def list_strategies(category: str | None = None) -> list[dict[str, str]]:
    """Describe registered strategies, optionally filtered by category."""
    result = [
        {"name": cls.name, "category": cls.category.value, "severity": cls.severity.value}
        for cls in STRATEGY_REGISTRY.values()
    ]
    if category:
        result = [r for r in result if r["category"] == category]
    return result


__all__ = [
    "ChaosStrategy", "FaultBackend",
    "NetworkStrategy", "ApplicationStrategy", "ResourceStrategy", "InfrastructureStrategy",
    "NetworkLatencyStrategy", "PacketLossStrategy", "DnsFailureStrategy",
    "ConnectionResetStrategy", "BandwidthThrottleStrategy",
    "ExceptionInjectionStrategy", "SlowResponseStrategy", "MalformedResponseStrategy",
    "DeadlockStrategy", "InjectedFaultError",
    "MemoryLeakStrategy", "MemoryPressureStrategy", "CpuSpikeStrategy",
    "NodeCrashStrategy", "ZoneFailureStrategy", "DependencyTimeoutStrategy",
    "DependencyTimeoutError", "DatabaseFailoverStrategy", "CacheInvalidationStrategy",
    "STRATEGY_REGISTRY", "UnknownStrategyError", "create_strategy", "list_strategies",
]
