"""Application-level fault strategies.

These faults live inside the process under test: the caller's code asks the
strategy whether (and how) to misbehave via helpers such as
``maybe_raise()``, ``maybe_delay()``, ``corrupt()`` and ``acquire_lock()``.
All helpers are no-ops while the strategy is inactive.
"""

from __future__ import annotations

import asyncio
import json
import os
import random
from typing import Any, Sequence

from faultline.chaos.strategies.base import ChaosStrategy, FaultBackend
from faultline.chaos.types import (
    BlastRadius,
    BlastScope,
    CheckStatus,
    FaultCategory,
    HealthCheckItem,
    Severity,
)


class InjectedFaultError(Exception):
    """Default exception raised by ``ExceptionInjectionStrategy``."""


class ApplicationStrategy(ChaosStrategy):
    """Common base for application faults."""

    category = FaultCategory.APPLICATION

    def __init__(
        self,
        target_services: Sequence[str],
        blast_radius: BlastRadius,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(blast_radius, backend)
        self.target_services = list(target_services)

    def affected_endpoints(self) -> tuple[str, ...]:
        return tuple(self.target_services)

    def _checks(self) -> list[HealthCheckItem]:
        if self._active:
            return [HealthCheckItem("application_behavior", CheckStatus.WARN, "Application fault active")]
        return [HealthCheckItem("application_behavior", CheckStatus.PASS, "Application behaving normally")]


class ExceptionInjectionStrategy(ApplicationStrategy):
    """Raises an exception from instrumented call sites at a given rate."""

    name = "exception_injection"
    severity = Severity.HIGH

    def __init__(
        self,
        error_rate: float = 1.0,
        exception_type: type[Exception] = InjectedFaultError,
        message: str = "Injected fault",
        target_services: Sequence[str] = (),
        backend: FaultBackend | None = None,
    ) -> None:
        self.error_rate = min(max(error_rate, 0.0), 1.0)
        super().__init__(
            target_services,
            BlastRadius.of(BlastScope.SERVICE, target_services, self.error_rate * 100, 60_000, 100),
            backend,
        )
        self.exception_type = exception_type
        self.message = message
        self.raised_count = 0

    async def _apply(self) -> str:
        self.raised_count = 0
        return f"Raising {self.exception_type.__name__} on {self.error_rate:.0%} of calls"

    async def _revert(self) -> str:
        return f"Exception injection stopped after {self.raised_count} raises"

    def maybe_raise(self) -> None:
        if self._active and random.random() < self.error_rate:
            self.raised_count += 1
            raise self.exception_type(self.message)

    def params(self) -> dict[str, Any]:
        return {
            "error_rate": self.error_rate,
            "exception_type": self.exception_type.__name__,
            "message": self.message,
        }


class SlowResponseStrategy(ApplicationStrategy):
    name = "slow_response"
    severity = Severity.MEDIUM

    def __init__(
        self,
        delay_ms: int,
        target_services: Sequence[str] = (),
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            target_services,
            BlastRadius.of(BlastScope.SERVICE, target_services, 25, 60_000, 100),
            backend,
        )
        self.delay_ms = delay_ms

    async def _apply(self) -> str:
        return f"Responses delayed by {self.delay_ms}ms"

    async def _revert(self) -> str:
        return "Response delay removed"

    async def maybe_delay(self) -> None:
        """Await the configured delay, only while active."""
        if self._active:
            await asyncio.sleep(self.delay_ms / 1000)

    def params(self) -> dict[str, Any]:
        return {"delay_ms": self.delay_ms}


class MalformedResponseStrategy(ApplicationStrategy):
    """Corrupts response payloads passed through ``corrupt()``.

    Modes:
        json       -- serialised payload wrapped in unbalanced braces
        truncate   -- first 10 characters of the serialised payload
        garbage    -- random bytes
        wrong_type -- list becomes dict (index keys), dict becomes list of values
        random     -- one of the above, picked once per injection
    """

    name = "malformed_response"
    severity = Severity.HIGH

    MODES = ("json", "truncate", "garbage", "wrong_type")
    TRUNCATE_AT = 10

    def __init__(
        self,
        mode: str = "random",
        target_services: Sequence[str] = (),
        backend: FaultBackend | None = None,
    ) -> None:
        if mode != "random" and mode not in self.MODES:
            raise ValueError(f"Unknown corruption mode '{mode}'. Valid: {[*self.MODES, 'random']}")
        super().__init__(
            target_services,
            BlastRadius.of(BlastScope.SERVICE, target_services, 40, 60_000, 100),
            backend,
        )
        self.mode = mode
        self.active_mode: str | None = None

    async def _apply(self) -> str:
        self.active_mode = random.choice(self.MODES) if self.mode == "random" else self.mode
        return f"Corrupting responses ({self.active_mode})"

    async def _revert(self) -> str:
        self.active_mode = None
        return "Response corruption removed"

    def corrupt(self, data: Any) -> Any:
        """Return a corrupted copy of *data*; *data* itself when inactive."""
        if not self._active or self.active_mode is None:
            return data
        if self.active_mode == "json":
            return "{{" + _as_text(data) + "}"
        if self.active_mode == "truncate":
            return _as_text(data)[: self.TRUNCATE_AT]
        if self.active_mode == "garbage":
            return os.urandom(max(len(_as_text(data)), 16))
        # wrong_type
        if isinstance(data, list):
            return {str(i): item for i, item in enumerate(data)}
        if isinstance(data, dict):
            return list(data.values())
        return [data]

    def params(self) -> dict[str, Any]:
        return {"mode": self.mode, "active_mode": self.active_mode}


def _as_text(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return json.dumps(data, default=str)


class DeadlockStrategy(ApplicationStrategy):
    """Blocks every ``acquire_lock(name)`` until the fault is recovered.

    Each named resource gets one unresolved future at injection time.
    ``recover()`` resolves all of them together, releasing every waiter.
    """

    name = "deadlock"
    severity = Severity.CRITICAL

    def __init__(
        self,
        resources: Sequence[str],
        backend: FaultBackend | None = None,
    ) -> None:
        if not resources:
            raise ValueError("DeadlockStrategy needs at least one resource")
        super().__init__(
            resources,
            BlastRadius.of(BlastScope.SINGLE, resources, 100, 30_000, 100),
            backend,
        )
        self.resources = list(resources)
        self._locks: dict[str, asyncio.Future[None]] = {}
        self._waiters = 0

    async def _apply(self) -> str:
        loop = asyncio.get_running_loop()
        self._locks = {name: loop.create_future() for name in self.resources}
        return f"Deadlocking resources: {', '.join(self.resources)}"

    async def _revert(self) -> str:
        released = self._waiters
        for future in self._locks.values():
            if not future.done():
                future.set_result(None)
        self._locks = {}
        return f"Released {len(self.resources)} resources ({released} waiters)"

    async def acquire_lock(self, resource: str) -> None:
        """Wait for *resource*; blocks until recovery while the fault is active."""
        future = self._locks.get(resource)
        if future is None:
            return
        self._waiters += 1
        try:
            # shield: a cancelled waiter must not resolve the lock for everyone
            await asyncio.shield(future)
        finally:
            self._waiters -= 1

    @property
    def waiting(self) -> int:
        return self._waiters

    def _checks(self) -> list[HealthCheckItem]:
        if self._active:
            return [
                HealthCheckItem(
                    "lock_availability",
                    CheckStatus.FAIL,
                    f"{len(self.resources)} resources deadlocked, {self._waiters} waiters blocked",
                )
            ]
        return [HealthCheckItem("lock_availability", CheckStatus.PASS, "All locks available")]

    def params(self) -> dict[str, Any]:
        return {"resources": self.resources}
