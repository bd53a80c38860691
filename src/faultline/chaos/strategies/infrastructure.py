"""Infrastructure fault strategies: nodes, zones, dependencies, databases, caches."""

from __future__ import annotations

import asyncio
import random
import zlib
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from faultline.chaos.strategies.base import ChaosStrategy, FaultBackend
from faultline.chaos.types import (
    BlastRadius,
    BlastScope,
    CheckStatus,
    FaultCategory,
    HealthCheckItem,
    Severity,
)

T = TypeVar("T")


class DependencyTimeoutError(TimeoutError):
    """Raised by ``DependencyTimeoutStrategy.simulate_call`` when the timer wins."""

    def __init__(self, dependency: str, timeout_ms: int) -> None:
        self.dependency = dependency
        self.timeout_ms = timeout_ms
        super().__init__(f"{dependency} timeout after {timeout_ms}ms")


class InfrastructureStrategy(ChaosStrategy):
    """Common base for infrastructure faults. Fully unhealthy while active."""

    category = FaultCategory.INFRASTRUCTURE

    def _checks(self) -> list[HealthCheckItem]:
        if self._active:
            return [HealthCheckItem("infrastructure_state", CheckStatus.FAIL, "Infrastructure fault active")]
        return [HealthCheckItem("infrastructure_state", CheckStatus.PASS, "Infrastructure healthy")]


class NodeCrashStrategy(InfrastructureStrategy):
    name = "node_crash"
    severity = Severity.CRITICAL

    CRASH_TYPES = ("graceful", "immediate")

    def __init__(
        self,
        target_nodes: Sequence[str],
        crash_type: str = "graceful",
        restart_delay_ms: int = 2_000,
        backend: FaultBackend | None = None,
    ) -> None:
        if crash_type not in self.CRASH_TYPES:
            raise ValueError(f"crash_type must be one of {self.CRASH_TYPES}")
        super().__init__(
            BlastRadius.of(BlastScope.ZONE, target_nodes, 100, 5_000, 30_000),
            backend,
        )
        self.target_nodes = list(target_nodes)
        self.crash_type = crash_type
        self.restart_delay_ms = restart_delay_ms

    def affected_endpoints(self) -> tuple[str, ...]:
        return tuple(self.target_nodes)

    async def _apply(self) -> str:
        return f"Node crash simulation ({self.crash_type}) active for: {', '.join(self.target_nodes)}"

    async def _revert(self) -> str:
        await asyncio.sleep(self.restart_delay_ms / 1000)
        return "Nodes restarted successfully"

    def is_down(self, node: str) -> bool:
        return self._active and node in self.target_nodes

    def params(self) -> dict[str, Any]:
        return {
            "target_nodes": self.target_nodes,
            "crash_type": self.crash_type,
            "restart_delay_ms": self.restart_delay_ms,
        }


class ZoneFailureStrategy(InfrastructureStrategy):
    name = "zone_failure"
    severity = Severity.CRITICAL

    def __init__(
        self,
        zone_name: str,
        services_in_zone: Sequence[str],
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            BlastRadius.of(BlastScope.ZONE, services_in_zone, 100, 60_000, 60_000),
            backend,
        )
        self.zone_name = zone_name
        self.services_in_zone = list(services_in_zone)

    def affected_endpoints(self) -> tuple[str, ...]:
        return tuple(self.services_in_zone)

    async def _apply(self) -> str:
        return f"Zone {self.zone_name} marked as failed"

    async def _revert(self) -> str:
        return f"Zone {self.zone_name} restored"

    def is_available(self, service: str) -> bool:
        return not (self._active and service in self.services_in_zone)

    def params(self) -> dict[str, Any]:
        return {"zone_name": self.zone_name, "services_in_zone": self.services_in_zone}


class DependencyTimeoutStrategy(InfrastructureStrategy):
    """Races dependency calls against a timer while active."""

    name = "dependency_timeout"
    severity = Severity.HIGH

    def __init__(
        self,
        dependency_name: str,
        timeout_ms: int = 30_000,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            BlastRadius.of(BlastScope.SERVICE, [dependency_name], 80, 30_000, 1_000),
            backend,
        )
        self.dependency_name = dependency_name
        self.timeout_ms = timeout_ms

    async def _apply(self) -> str:
        return f"Dependency timeout active: {self.dependency_name} after {self.timeout_ms}ms"

    async def _revert(self) -> str:
        return f"{self.dependency_name} responding normally"

    async def simulate_call(self, actual_call: Callable[[], Awaitable[T]]) -> T:
        """Run *actual_call*, failing with ``DependencyTimeoutError`` if it
        does not settle within ``timeout_ms`` while the fault is active."""
        if not self._active:
            return await actual_call()
        try:
            return await asyncio.wait_for(actual_call(), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise DependencyTimeoutError(self.dependency_name, self.timeout_ms) from exc

    def params(self) -> dict[str, Any]:
        return {"dependency_name": self.dependency_name, "timeout_ms": self.timeout_ms}


class DatabaseFailoverStrategy(InfrastructureStrategy):
    name = "database_failover"
    severity = Severity.CRITICAL

    def __init__(
        self,
        database_name: str,
        failover_time_ms: int = 5_000,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            BlastRadius.of(
                BlastScope.REGION, [database_name, "all-db-clients"], 100, 30_000, failover_time_ms
            ),
            backend,
        )
        self.database_name = database_name
        self.failover_time_ms = failover_time_ms

    async def _apply(self) -> str:
        return f"Database {self.database_name} primary is down, failover in progress"

    async def _revert(self) -> str:
        await asyncio.sleep(self.failover_time_ms / 1000)
        return f"Database {self.database_name} failover complete, replica promoted"

    def is_primary_available(self) -> bool:
        return not self._active

    def params(self) -> dict[str, Any]:
        return {"database_name": self.database_name, "failover_time_ms": self.failover_time_ms}


class CacheInvalidationStrategy(InfrastructureStrategy):
    name = "cache_invalidation"
    severity = Severity.HIGH

    INVALIDATION_TYPES = ("full", "partial")
    PARTIAL_MISS_RATE = 0.3

    def __init__(
        self,
        cache_name: str,
        invalidation_type: str = "full",
        backend: FaultBackend | None = None,
    ) -> None:
        if invalidation_type not in self.INVALIDATION_TYPES:
            raise ValueError(f"invalidation_type must be one of {self.INVALIDATION_TYPES}")
        impact = 100 if invalidation_type == "full" else 30
        super().__init__(
            # rollback covers cache warm-up
            BlastRadius.of(BlastScope.SERVICE, [cache_name], impact, 5_000, 60_000),
            backend,
        )
        self.cache_name = cache_name
        self.invalidation_type = invalidation_type

    async def _apply(self) -> str:
        return f"Cache {self.cache_name} invalidated ({self.invalidation_type})"

    async def _revert(self) -> str:
        return f"Cache {self.cache_name} warming up"

    def should_miss(self, key: str = "") -> bool:
        """Whether a cache lookup should be treated as a miss."""
        if not self._active:
            return False
        if self.invalidation_type == "full":
            return True
        if key:
            # stable per key so a partially invalidated entry stays missing
            return zlib.crc32(key.encode()) % 100 < self.PARTIAL_MISS_RATE * 100
        return random.random() < self.PARTIAL_MISS_RATE

    def params(self) -> dict[str, Any]:
        return {"cache_name": self.cache_name, "invalidation_type": self.invalidation_type}
