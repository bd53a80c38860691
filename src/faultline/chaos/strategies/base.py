"""Strategy contract shared by every fault type.

A strategy owns one fault. ``inject()`` turns it on, ``recover()`` turns it
off and never raises, ``health_check()`` reports how degraded things look
while it is on. Subclasses implement ``_apply`` / ``_revert`` for the
fault-specific work and ``_checks`` for their family's health probes.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from faultline.chaos.types import (
    BlastRadius,
    FaultCategory,
    HealthCheckItem,
    HealthCheckResult,
    InjectionResult,
    RecoveryResult,
    Severity,
)

logger = logging.getLogger(__name__)


class FaultBackend:
    """Seam to the real fault mechanics.

    The default implementation does nothing, which keeps strategies in
    simulation mode. Integrations (proxies, orchestrator APIs, database
    failover controllers) subclass this and do the actual work.
    """

    async def apply(self, strategy: ChaosStrategy) -> None:
        return None

    async def revert(self, strategy: ChaosStrategy) -> None:
        return None


class ChaosStrategy(ABC):
    """Base class for all fault strategies."""

    name: ClassVar[str]
    category: ClassVar[FaultCategory]
    severity: ClassVar[Severity]

    def __init__(self, blast_radius: BlastRadius, backend: FaultBackend | None = None) -> None:
        self.blast_radius = blast_radius
        self.backend = backend or FaultBackend()
        self._active = False
        self._started_at: float | None = None
        # bumped by every recover() so an injection can tell it was overtaken
        self._generation = 0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def started_at(self) -> float | None:
        return self._started_at

    async def inject(self) -> InjectionResult:
        """Start the fault.

        The strategy is marked active before any fault-specific work runs,
        so ``recover()`` undoes a partial injection too.
        """
        self._active = True
        self._started_at = time.time()
        generation = self._generation
        message = await self._apply()
        await self.backend.apply(self)
        if generation != self._generation:
            return await self._undo_late_apply()
        logger.info("[%s] injected: %s", self.name, message)
        return InjectionResult(
            success=True,
            strategy_name=self.name,
            message=message,
            start_time=self._started_at,
            affected_endpoints=self.affected_endpoints(),
        )

    async def recover(self) -> RecoveryResult:
        """Undo the fault. Failures are reported in the result, not raised."""
        if not self._active:
            return RecoveryResult(
                success=True,
                strategy_name=self.name,
                recovery_time_ms=0.0,
                health_restored=True,
                message=f"{self.name} was not active",
            )

        self._generation += 1
        start = time.monotonic()
        errors: list[str] = []
        message = ""
        try:
            await self.backend.revert(self)
        except Exception as exc:
            errors.append(f"backend: {exc}")
        try:
            message = await self._revert()
        except Exception as exc:
            errors.append(str(exc))

        if errors:
            elapsed = (time.monotonic() - start) * 1000
            logger.warning("[%s] recovery failed: %s", self.name, "; ".join(errors))
            return RecoveryResult(
                success=False,
                strategy_name=self.name,
                recovery_time_ms=elapsed,
                health_restored=False,
                message=f"Recovery failed: {'; '.join(errors)}",
            )

        self._active = False
        elapsed = (time.monotonic() - start) * 1000
        logger.info("[%s] recovered in %.0fms", self.name, elapsed)
        return RecoveryResult(
            success=True,
            strategy_name=self.name,
            recovery_time_ms=elapsed,
            health_restored=True,
            message=message,
        )

    async def _undo_late_apply(self) -> InjectionResult:
        """Revert work that finished after the strategy was already recovered."""
        logger.warning("[%s] recovered while injecting, reverting late apply", self.name)
        errors: list[str] = []
        try:
            await self.backend.revert(self)
        except Exception as exc:
            errors.append(f"backend: {exc}")
        try:
            await self._revert()
        except Exception as exc:
            errors.append(str(exc))
        if errors:
            logger.warning("[%s] late revert failed: %s", self.name, "; ".join(errors))
        self._active = False
        return InjectionResult(
            success=False,
            strategy_name=self.name,
            message="Recovered during injection" + (f", late revert failed: {'; '.join(errors)}" if errors else ""),
            start_time=self._started_at or time.time(),
        )

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult.from_checks(self._checks())

    def affected_endpoints(self) -> tuple[str, ...]:
        return ()

    @abstractmethod
    async def _apply(self) -> str:
        """Fault-specific injection. Returns a human-readable message."""

    @abstractmethod
    async def _revert(self) -> str:
        """Fault-specific recovery. Returns a human-readable message."""

    @abstractmethod
    def _checks(self) -> list[HealthCheckItem]:
        """Family-level health probes."""

    def params(self) -> dict[str, Any]:
        """Fault-specific parameters, for reporting."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "severity": self.severity.value,
            "active": self._active,
            "blast_radius": self.blast_radius.to_dict(),
            "params": self.params(),
        }

    def __repr__(self) -> str:
        state = "active" if self._active else "inactive"
        return f"<{type(self).__name__} {self.name} {state}>"
