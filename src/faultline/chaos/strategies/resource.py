"""Resource exhaustion strategies: memory leaks, memory pressure, CPU burn."""

from __future__ import annotations

import asyncio
import contextlib
import gc
import logging
import threading
import time
from typing import Any

from faultline.chaos.strategies.base import ChaosStrategy, FaultBackend
from faultline.chaos.types import (
    BlastRadius,
    BlastScope,
    CheckStatus,
    FaultCategory,
    HealthCheckItem,
    Severity,
)

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class ResourceStrategy(ChaosStrategy):
    """Common base for resource faults. Reports how much memory is held."""

    category = FaultCategory.RESOURCE

    def retained_bytes(self) -> int:
        return 0

    def _checks(self) -> list[HealthCheckItem]:
        held = self.retained_bytes() / _MB
        if self._active:
            return [HealthCheckItem("memory_retained", CheckStatus.WARN, f"{held:.1f}MB held by fault")]
        return [HealthCheckItem("memory_retained", CheckStatus.PASS, f"{held:.1f}MB held")]


class MemoryLeakStrategy(ResourceStrategy):
    """Grows a buffer list once per tick until ``max_leak_mb`` is reached.

    Reaching the cap triggers ``recover()`` from inside the leak loop, so the
    fault bounds itself without help from the engine.
    """

    name = "memory_leak"
    severity = Severity.HIGH
    tick_seconds = 1.0

    def __init__(
        self,
        rate_mb_per_minute: float = 10.0,
        max_leak_mb: float = 100.0,
        target_service: str = "self",
        backend: FaultBackend | None = None,
    ) -> None:
        if rate_mb_per_minute <= 0 or max_leak_mb <= 0:
            raise ValueError("rate_mb_per_minute and max_leak_mb must be positive")
        super().__init__(
            BlastRadius.of(BlastScope.SINGLE, [target_service], 50, 600_000, 1_000),
            backend,
        )
        self.rate_mb_per_minute = rate_mb_per_minute
        self.max_leak_mb = max_leak_mb
        self._buffers: list[bytearray] = []
        self._leaked = 0
        self._task: asyncio.Task[None] | None = None
        self.self_recovered = False

    @property
    def chunk_bytes(self) -> int:
        return int(self.rate_mb_per_minute * _MB / 60)

    def retained_bytes(self) -> int:
        return self._leaked

    async def _apply(self) -> str:
        self.self_recovered = False
        self._task = asyncio.create_task(self._leak_loop(), name=f"{self.name}-loop")
        return f"Leaking {self.rate_mb_per_minute:g}MB/min up to {self.max_leak_mb:g}MB"

    async def _leak_loop(self) -> None:
        limit = self.max_leak_mb * _MB
        while self._active:
            await asyncio.sleep(self.tick_seconds)
            if not self._active:
                return
            self._buffers.append(bytearray(self.chunk_bytes))
            self._leaked += self.chunk_bytes
            if self._leaked >= limit:
                logger.info("[%s] leak cap of %gMB reached, recovering", self.name, self.max_leak_mb)
                self.self_recovered = True
                await self.recover()
                return

    async def _revert(self) -> str:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        released = self._leaked
        self._buffers.clear()
        self._leaked = 0
        gc.collect()
        return f"Released {released / _MB:.1f}MB"

    def params(self) -> dict[str, Any]:
        return {"rate_mb_per_minute": self.rate_mb_per_minute, "max_leak_mb": self.max_leak_mb}


class MemoryPressureStrategy(ResourceStrategy):
    """Allocates a fixed amount of memory in blocks and holds it."""

    name = "memory_pressure"
    severity = Severity.HIGH

    def __init__(
        self,
        target_mb: int = 256,
        block_mb: int = 10,
        target_service: str = "self",
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            BlastRadius.of(BlastScope.SINGLE, [target_service], 80, 30_000, 5_000),
            backend,
        )
        self.target_mb = target_mb
        self.block_mb = max(1, block_mb)
        self._blocks: list[bytearray] = []

    def retained_bytes(self) -> int:
        return sum(len(b) for b in self._blocks)

    async def _apply(self) -> str:
        needed = self.target_mb // self.block_mb
        try:
            for _ in range(needed):
                self._blocks.append(bytearray(self.block_mb * _MB))
        except MemoryError:
            logger.warning(
                "[%s] allocation stopped at %d blocks (out of memory)", self.name, len(self._blocks)
            )
        return f"Allocated {len(self._blocks) * self.block_mb}MB"

    async def _revert(self) -> str:
        count = len(self._blocks)
        self._blocks.clear()
        gc.collect()
        return f"Released {count * self.block_mb}MB"

    def params(self) -> dict[str, Any]:
        return {"target_mb": self.target_mb, "block_mb": self.block_mb}


class CpuSpikeStrategy(ResourceStrategy):
    """Burns CPU on background threads, stopping itself after ``duration_ms``."""

    name = "cpu_spike"
    severity = Severity.HIGH
    slice_seconds = 0.05

    def __init__(
        self,
        cores: int = 1,
        duration_ms: int = 10_000,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            BlastRadius.of(BlastScope.SINGLE, ["self"], min(cores * 25, 100), 15_000, 100),
            backend,
        )
        self.cores = max(1, cores)
        self.duration_ms = duration_ms
        self._stop = threading.Event()
        self._workers: list[threading.Thread] = []
        self._timer: asyncio.TimerHandle | None = None
        self._auto_recovery: asyncio.Task[Any] | None = None

    def _burn(self) -> None:
        while not self._stop.is_set():
            end = time.monotonic() + self.slice_seconds
            while time.monotonic() < end:
                pass
            time.sleep(0)

    async def _apply(self) -> str:
        self._stop.clear()
        for i in range(self.cores):
            worker = threading.Thread(target=self._burn, name=f"cpu-spike-{i}", daemon=True)
            worker.start()
            self._workers.append(worker)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.duration_ms / 1000, self._expire)
        return f"CPU burn active on {self.cores} core(s) for {self.duration_ms}ms"

    def _expire(self) -> None:
        if self._active:
            self._auto_recovery = asyncio.ensure_future(self.recover())

    async def _revert(self) -> str:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._stop.set()
        workers, self._workers = self._workers, []
        for worker in workers:
            await asyncio.to_thread(worker.join, 1.0)
        return "CPU burn stopped"

    def _checks(self) -> list[HealthCheckItem]:
        if self._active:
            return [HealthCheckItem("cpu_usage", CheckStatus.WARN, f"{len(self._workers)} burn threads running")]
        return [HealthCheckItem("cpu_usage", CheckStatus.PASS, "No burn threads")]

    def params(self) -> dict[str, Any]:
        return {"cores": self.cores, "duration_ms": self.duration_ms}
