"""Network fault strategies: latency, packet loss, DNS, resets, throttling."""

from __future__ import annotations

import asyncio
import random
import socket
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


class NetworkStrategy(ChaosStrategy):
    """Common base for network faults."""

    category = FaultCategory.NETWORK

    def __init__(
        self,
        targets: Sequence[str],
        blast_radius: BlastRadius,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(blast_radius, backend)
        self.targets = list(targets)

    def affected_endpoints(self) -> tuple[str, ...]:
        return tuple(self.targets)

    def _checks(self) -> list[HealthCheckItem]:
        if self._active:
            return [HealthCheckItem("network_connectivity", CheckStatus.WARN, "Fault injection active")]
        return [HealthCheckItem("network_connectivity", CheckStatus.PASS, "Network normal")]


class NetworkLatencyStrategy(NetworkStrategy):
    """Adds a fixed latency (plus optional jitter) to calls to the targets."""

    name = "network_latency"
    severity = Severity.MEDIUM

    def __init__(
        self,
        latency_ms: int,
        target_urls: Sequence[str] = (),
        jitter_ms: int = 0,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            target_urls,
            BlastRadius.of(BlastScope.SERVICE, target_urls, 30, 60_000, 1_000),
            backend,
        )
        self.latency_ms = latency_ms
        self.jitter_ms = jitter_ms

    async def _apply(self) -> str:
        return f"Latency injection active: {self.latency_ms}ms (±{self.jitter_ms}ms jitter)"

    async def _revert(self) -> str:
        return "Latency injection removed"

    def current_delay_ms(self) -> float:
        if not self._active:
            return 0.0
        jitter = random.uniform(-self.jitter_ms, self.jitter_ms) if self.jitter_ms else 0.0
        return max(0.0, self.latency_ms + jitter)

    async def maybe_delay(self) -> None:
        """Sleep for the configured latency while the fault is active."""
        delay = self.current_delay_ms()
        if delay:
            await asyncio.sleep(delay / 1000)

    def params(self) -> dict[str, Any]:
        return {"latency_ms": self.latency_ms, "jitter_ms": self.jitter_ms, "targets": self.targets}


class PacketLossStrategy(NetworkStrategy):
    name = "packet_loss"
    severity = Severity.HIGH

    def __init__(
        self,
        loss_percent: float,
        target_urls: Sequence[str] = (),
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            target_urls,
            BlastRadius.of(BlastScope.SERVICE, target_urls, loss_percent, 30_000, 500),
            backend,
        )
        self.loss_percent = min(max(loss_percent, 0.0), 100.0)

    async def _apply(self) -> str:
        return f"Dropping {self.loss_percent:g}% of packets"

    async def _revert(self) -> str:
        return "Packet loss simulation stopped"

    def should_drop(self) -> bool:
        """Decide whether the next packet is dropped."""
        return self._active and random.random() * 100 < self.loss_percent

    def params(self) -> dict[str, Any]:
        return {"loss_percent": self.loss_percent, "targets": self.targets}


class DnsFailureStrategy(NetworkStrategy):
    """Makes name resolution fail for the target domains."""

    name = "dns_failure"
    severity = Severity.CRITICAL

    def __init__(
        self,
        target_domains: Sequence[str],
        cache_refresh_ms: int = 1_000,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            target_domains,
            BlastRadius.of(BlastScope.ZONE, target_domains, 100, 15_000, 2_000),
            backend,
        )
        self.cache_refresh_ms = cache_refresh_ms

    async def _apply(self) -> str:
        return f"DNS resolution will fail for: {', '.join(self.targets)}"

    async def _revert(self) -> str:
        # resolvers keep negative answers cached for a while
        await asyncio.sleep(self.cache_refresh_ms / 1000)
        return "DNS resolution restored"

    def resolve(self, host: str) -> None:
        """Raise ``socket.gaierror`` for target hosts while active."""
        if not self._active:
            return
        for domain in self.targets:
            if host == domain or host.endswith("." + domain):
                raise socket.gaierror(socket.EAI_NONAME, f"Name or service not known: {host}")

    def params(self) -> dict[str, Any]:
        return {"target_domains": self.targets, "cache_refresh_ms": self.cache_refresh_ms}


class ConnectionResetStrategy(NetworkStrategy):
    name = "connection_reset"
    severity = Severity.HIGH

    def __init__(
        self,
        target_urls: Sequence[str] = (),
        reset_after_bytes: int = 0,
        backend: FaultBackend | None = None,
    ) -> None:
        super().__init__(
            target_urls,
            BlastRadius.of(BlastScope.SERVICE, target_urls, 50, 20_000, 500),
            backend,
        )
        self.reset_after_bytes = reset_after_bytes

    async def _apply(self) -> str:
        if self.reset_after_bytes > 0:
            return f"Resetting connections after {self.reset_after_bytes} bytes"
        return "Immediately resetting connections"

    async def _revert(self) -> str:
        return "Connection reset simulation stopped"

    def maybe_reset(self, bytes_sent: int = 0) -> None:
        """Raise ``ConnectionResetError`` once the byte threshold is crossed."""
        if self._active and bytes_sent >= self.reset_after_bytes:
            raise ConnectionResetError(f"Connection reset by peer after {bytes_sent} bytes")

    def params(self) -> dict[str, Any]:
        return {"reset_after_bytes": self.reset_after_bytes, "targets": self.targets}


class BandwidthThrottleStrategy(NetworkStrategy):
    name = "bandwidth_throttle"
    severity = Severity.MEDIUM

    def __init__(
        self,
        bytes_per_second: int,
        target_urls: Sequence[str] = (),
        backend: FaultBackend | None = None,
    ) -> None:
        if bytes_per_second <= 0:
            raise ValueError("bytes_per_second must be positive")
        super().__init__(
            target_urls,
            BlastRadius.of(BlastScope.SERVICE, target_urls, 20, 120_000, 500),
            backend,
        )
        self.bytes_per_second = bytes_per_second

    async def _apply(self) -> str:
        return f"Bandwidth limited to {round(self.bytes_per_second / 1024)} KB/s"

    async def _revert(self) -> str:
        return "Bandwidth throttle removed"

    async def throttle(self, nbytes: int) -> None:
        """Sleep as long as transferring *nbytes* would take at the limit."""
        if self._active and nbytes > 0:
            await asyncio.sleep(nbytes / self.bytes_per_second)

    def params(self) -> dict[str, Any]:
        return {"bytes_per_second": self.bytes_per_second, "targets": self.targets}
