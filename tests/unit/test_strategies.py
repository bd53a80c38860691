"""Tests for fault strategies — contract, families, and the registry."""

import asyncio
import socket
import time

import pytest

from faultline.chaos.strategies import (
    STRATEGY_REGISTRY,
    BandwidthThrottleStrategy,
    CacheInvalidationStrategy,
    ConnectionResetStrategy,
    CpuSpikeStrategy,
    DatabaseFailoverStrategy,
    DeadlockStrategy,
    DependencyTimeoutError,
    DependencyTimeoutStrategy,
    DnsFailureStrategy,
    ExceptionInjectionStrategy,
    FaultBackend,
    InjectedFaultError,
    MalformedResponseStrategy,
    MemoryLeakStrategy,
    MemoryPressureStrategy,
    NetworkLatencyStrategy,
    NodeCrashStrategy,
    PacketLossStrategy,
    SlowResponseStrategy,
    UnknownStrategyError,
    ZoneFailureStrategy,
    create_strategy,
    list_strategies,
)
from faultline.chaos.types import BlastScope, CheckStatus, FaultCategory


async def _wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()


class _RecordingBackend(FaultBackend):
    def __init__(self, fail_apply: bool = False, fail_revert: bool = False) -> None:
        self.applied = 0
        self.reverted = 0
        self.fail_apply = fail_apply
        self.fail_revert = fail_revert

    async def apply(self, strategy):
        self.applied += 1
        if self.fail_apply:
            raise RuntimeError("proxy unreachable")

    async def revert(self, strategy):
        self.reverted += 1
        if self.fail_revert:
            raise RuntimeError("proxy refused revert")


class _SlowBackend(FaultBackend):
    """Backend whose apply finishes only after a delay."""

    def __init__(self, delay: float = 0.1) -> None:
        self.delay = delay
        self.applied = False

    async def apply(self, strategy):
        await asyncio.sleep(self.delay)
        self.applied = True

    async def revert(self, strategy):
        self.applied = False


# ---------------------------------------------------------------------------
# Strategy contract
# ---------------------------------------------------------------------------


class TestStrategyContract:
    async def test_inject_then_recover(self) -> None:
        backend = _RecordingBackend()
        s = NetworkLatencyStrategy(latency_ms=100, target_urls=["svc"], backend=backend)
        injection = await s.inject()
        assert injection.success
        assert injection.strategy_name == "network_latency"
        assert injection.affected_endpoints == ("svc",)
        assert s.is_active
        assert s.started_at is not None

        recovery = await s.recover()
        assert recovery.success
        assert recovery.health_restored
        assert not s.is_active
        assert backend.applied == 1
        assert backend.reverted == 1

    async def test_recover_when_inactive_is_noop(self) -> None:
        s = PacketLossStrategy(loss_percent=10)
        recovery = await s.recover()
        assert recovery.success
        assert recovery.recovery_time_ms == 0.0

    async def test_recover_twice_is_idempotent(self) -> None:
        s = PacketLossStrategy(loss_percent=10)
        await s.inject()
        assert (await s.recover()).success
        assert (await s.recover()).success
        assert not s.is_active

    async def test_failed_backend_apply_leaves_strategy_recoverable(self) -> None:
        backend = _RecordingBackend(fail_apply=True)
        s = PacketLossStrategy(loss_percent=10, backend=backend)
        with pytest.raises(RuntimeError, match="proxy unreachable"):
            await s.inject()
        assert s.is_active
        assert (await s.recover()).success
        assert not s.is_active

    async def test_failed_revert_reported_not_raised(self) -> None:
        backend = _RecordingBackend(fail_revert=True)
        s = PacketLossStrategy(loss_percent=10, backend=backend)
        await s.inject()
        recovery = await s.recover()
        assert not recovery.success
        assert not recovery.health_restored
        assert "proxy refused revert" in recovery.message
        assert s.is_active

        backend.fail_revert = False
        assert (await s.recover()).success
        assert not s.is_active

    def test_to_dict(self) -> None:
        d = NetworkLatencyStrategy(latency_ms=200, target_urls=["api"]).to_dict()
        assert d["name"] == "network_latency"
        assert d["category"] == "network"
        assert d["active"] is False
        assert d["params"]["latency_ms"] == 200
        assert d["blast_radius"]["scope"] == "service"

    async def test_recover_during_inject_reverts_late_apply(self) -> None:
        backend = _SlowBackend()
        s = NetworkLatencyStrategy(latency_ms=100, backend=backend)
        injecting = asyncio.create_task(s.inject())
        await asyncio.sleep(0.02)
        assert (await s.recover()).success

        injection = await injecting
        assert injection.success is False
        assert "Recovered during injection" in injection.message
        assert backend.applied is False
        assert not s.is_active

    async def test_reinject_after_recover(self) -> None:
        backend = _RecordingBackend()
        s = PacketLossStrategy(loss_percent=5, backend=backend)
        await s.inject()
        await s.recover()
        assert (await s.inject()).success
        assert s.is_active
        await s.recover()
        assert backend.applied == 2
        assert backend.reverted == 2


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


class TestNetworkStrategies:
    async def test_health_warns_while_active(self) -> None:
        s = NetworkLatencyStrategy(latency_ms=50)
        assert (await s.health_check()).healthy
        await s.inject()
        health = await s.health_check()
        assert not health.healthy
        assert health.checks[0].status is CheckStatus.WARN
        assert health.overall_score == 0
        await s.recover()
        assert (await s.health_check()).overall_score == 100

    async def test_latency_delay(self) -> None:
        s = NetworkLatencyStrategy(latency_ms=300, jitter_ms=50)
        assert s.current_delay_ms() == 0.0
        await s.inject()
        for _ in range(20):
            assert 250 <= s.current_delay_ms() <= 350
        await s.recover()

    async def test_packet_loss(self) -> None:
        s = PacketLossStrategy(loss_percent=100)
        assert not s.should_drop()
        await s.inject()
        assert s.should_drop()
        await s.recover()
        assert not s.should_drop()

    def test_packet_loss_clamped(self) -> None:
        assert PacketLossStrategy(loss_percent=250).loss_percent == 100.0

    async def test_dns_failure(self) -> None:
        s = DnsFailureStrategy(["internal.example"], cache_refresh_ms=0)
        assert s.blast_radius.scope is BlastScope.ZONE
        await s.inject()
        with pytest.raises(socket.gaierror):
            s.resolve("db.internal.example")
        s.resolve("public.example.org")
        await s.recover()
        s.resolve("db.internal.example")

    async def test_connection_reset_threshold(self) -> None:
        s = ConnectionResetStrategy(reset_after_bytes=1024)
        await s.inject()
        s.maybe_reset(512)
        with pytest.raises(ConnectionResetError):
            s.maybe_reset(2048)
        await s.recover()
        s.maybe_reset(4096)

    def test_bandwidth_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BandwidthThrottleStrategy(bytes_per_second=0)

    async def test_bandwidth_throttle_sleeps(self) -> None:
        s = BandwidthThrottleStrategy(bytes_per_second=10_000)
        await s.inject()
        start = time.monotonic()
        await s.throttle(1_000)
        assert time.monotonic() - start >= 0.09
        await s.recover()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


class TestExceptionInjection:
    async def test_raises_at_full_rate(self) -> None:
        s = ExceptionInjectionStrategy(error_rate=1.0, message="boom")
        s.maybe_raise()
        await s.inject()
        with pytest.raises(InjectedFaultError, match="boom"):
            s.maybe_raise()
        assert s.raised_count == 1
        await s.recover()
        s.maybe_raise()

    async def test_custom_exception_type(self) -> None:
        s = ExceptionInjectionStrategy(exception_type=ConnectionError)
        await s.inject()
        with pytest.raises(ConnectionError):
            s.maybe_raise()
        await s.recover()

    async def test_zero_rate_never_raises(self) -> None:
        s = ExceptionInjectionStrategy(error_rate=0.0)
        await s.inject()
        for _ in range(50):
            s.maybe_raise()
        await s.recover()


class TestSlowResponse:
    async def test_delay_only_while_active(self) -> None:
        s = SlowResponseStrategy(delay_ms=100)
        start = time.monotonic()
        await s.maybe_delay()
        assert time.monotonic() - start < 0.05

        await s.inject()
        start = time.monotonic()
        await s.maybe_delay()
        assert time.monotonic() - start >= 0.09
        await s.recover()


class TestMalformedResponse:
    async def _active(self, mode: str) -> MalformedResponseStrategy:
        s = MalformedResponseStrategy(mode=mode)
        await s.inject()
        return s

    async def test_json_mode(self) -> None:
        s = await self._active("json")
        assert s.corrupt('{"ok": true}') == '{{{"ok": true}}'

    async def test_truncate_mode(self) -> None:
        s = await self._active("truncate")
        assert s.corrupt("abcdefghijklmnop") == "abcdefghij"

    async def test_garbage_mode(self) -> None:
        s = await self._active("garbage")
        out = s.corrupt("hi")
        assert isinstance(out, bytes)
        assert len(out) == 16

    async def test_wrong_type_mode(self) -> None:
        s = await self._active("wrong_type")
        assert s.corrupt(["a", "b"]) == {"0": "a", "1": "b"}
        assert s.corrupt({"x": 1, "y": 2}) == [1, 2]
        assert s.corrupt(42) == [42]

    async def test_random_mode_picks_known_mode(self) -> None:
        s = await self._active("random")
        assert s.active_mode in MalformedResponseStrategy.MODES
        await s.recover()
        assert s.active_mode is None

    async def test_passthrough_when_inactive(self) -> None:
        s = MalformedResponseStrategy(mode="truncate")
        assert s.corrupt("abcdefghijklmnop") == "abcdefghijklmnop"

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            MalformedResponseStrategy(mode="sideways")


class TestDeadlock:
    async def test_locks_release_only_on_recover(self) -> None:
        s = DeadlockStrategy(["db", "cache", "queue"])
        await s.inject()
        waiters = [asyncio.create_task(s.acquire_lock(r)) for r in ("db", "cache", "queue")]
        await asyncio.sleep(0.05)
        assert not any(w.done() for w in waiters)
        assert s.waiting == 3

        await s.recover()
        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)
        assert s.waiting == 0

    async def test_unknown_resource_not_blocked(self) -> None:
        s = DeadlockStrategy(["db"])
        await s.inject()
        await asyncio.wait_for(s.acquire_lock("other"), timeout=0.5)
        await s.recover()

    async def test_cancelled_waiter_does_not_release_others(self) -> None:
        s = DeadlockStrategy(["db"])
        await s.inject()
        first = asyncio.create_task(s.acquire_lock("db"))
        second = asyncio.create_task(s.acquire_lock("db"))
        await asyncio.sleep(0.02)
        first.cancel()
        await asyncio.sleep(0.02)
        assert not second.done()
        await s.recover()
        await asyncio.wait_for(second, timeout=1.0)

    async def test_health_fails_while_active(self) -> None:
        s = DeadlockStrategy(["db"])
        await s.inject()
        health = await s.health_check()
        assert health.checks[0].status is CheckStatus.FAIL
        await s.recover()
        assert (await s.health_check()).healthy

    def test_needs_resources(self) -> None:
        with pytest.raises(ValueError):
            DeadlockStrategy([])


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


class TestMemoryLeak:
    def test_chunk_size(self) -> None:
        s = MemoryLeakStrategy(rate_mb_per_minute=600, max_leak_mb=10)
        assert s.chunk_bytes == 10 * 1024 * 1024

    async def test_self_recovers_at_cap(self) -> None:
        s = MemoryLeakStrategy(rate_mb_per_minute=600, max_leak_mb=10)
        await s.inject()
        assert await _wait_until(lambda: not s.is_active, timeout=3.0)
        assert s.self_recovered
        assert s.retained_bytes() == 0
        assert (await s.health_check()).healthy

    async def test_manual_recover_stops_loop(self) -> None:
        s = MemoryLeakStrategy(rate_mb_per_minute=60, max_leak_mb=100)
        await s.inject()
        recovery = await s.recover()
        assert recovery.success
        assert not s.self_recovered
        await asyncio.sleep(0.05)
        assert s.retained_bytes() == 0

    def test_rejects_non_positive(self) -> None:
        with pytest.raises(ValueError):
            MemoryLeakStrategy(rate_mb_per_minute=0)


class TestMemoryPressure:
    async def test_allocates_and_releases(self) -> None:
        s = MemoryPressureStrategy(target_mb=4, block_mb=2)
        await s.inject()
        assert s.retained_bytes() == 4 * 1024 * 1024
        health = await s.health_check()
        assert health.checks[0].name == "memory_retained"
        assert health.checks[0].status is CheckStatus.WARN
        await s.recover()
        assert s.retained_bytes() == 0


class TestCpuSpike:
    async def test_expires_on_its_own(self) -> None:
        s = CpuSpikeStrategy(cores=1, duration_ms=50)
        await s.inject()
        assert (await s.health_check()).checks[0].status is CheckStatus.WARN
        assert await _wait_until(lambda: not s.is_active, timeout=3.0)
        assert (await s.health_check()).healthy

    async def test_manual_recover(self) -> None:
        s = CpuSpikeStrategy(cores=1, duration_ms=10_000)
        await s.inject()
        assert (await s.recover()).success
        assert not s.is_active


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class TestInfrastructureStrategies:
    async def test_node_crash(self) -> None:
        s = NodeCrashStrategy(["node-1", "node-2"], crash_type="immediate", restart_delay_ms=0)
        assert not s.is_down("node-1")
        await s.inject()
        assert s.is_down("node-1")
        assert not s.is_down("node-3")
        health = await s.health_check()
        assert health.overall_score == 0
        await s.recover()
        assert not s.is_down("node-1")

    def test_node_crash_type_validated(self) -> None:
        with pytest.raises(ValueError):
            NodeCrashStrategy(["n"], crash_type="explosive")

    async def test_zone_failure(self) -> None:
        s = ZoneFailureStrategy("zone-a", ["api", "worker"])
        await s.inject()
        assert not s.is_available("api")
        assert s.is_available("billing")
        await s.recover()
        assert s.is_available("api")

    async def test_dependency_timeout_fires(self) -> None:
        s = DependencyTimeoutStrategy("payments", timeout_ms=50)
        await s.inject()

        async def slow() -> str:
            await asyncio.sleep(1)
            return "late"

        with pytest.raises(DependencyTimeoutError) as exc_info:
            await s.simulate_call(slow)
        assert isinstance(exc_info.value, TimeoutError)
        assert "payments timeout after 50ms" in str(exc_info.value)
        await s.recover()

    async def test_dependency_fast_call_passes(self) -> None:
        s = DependencyTimeoutStrategy("payments", timeout_ms=500)
        await s.inject()

        async def fast() -> str:
            return "ok"

        assert await s.simulate_call(fast) == "ok"
        await s.recover()

    async def test_database_failover(self) -> None:
        s = DatabaseFailoverStrategy("orders-db", failover_time_ms=0)
        assert s.blast_radius.scope is BlastScope.REGION
        await s.inject()
        assert not s.is_primary_available()
        await s.recover()
        assert s.is_primary_available()

    async def test_cache_invalidation_full(self) -> None:
        s = CacheInvalidationStrategy("sessions")
        assert not s.should_miss("k")
        await s.inject()
        assert s.should_miss("k")
        await s.recover()

    async def test_cache_invalidation_partial_is_stable_per_key(self) -> None:
        s = CacheInvalidationStrategy("sessions", invalidation_type="partial")
        await s.inject()
        keys = [f"user:{i}" for i in range(200)]
        first = [s.should_miss(k) for k in keys]
        assert first == [s.should_miss(k) for k in keys]
        assert 0 < sum(first) < len(keys)
        await s.recover()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_all_strategies_registered(self) -> None:
        assert len(STRATEGY_REGISTRY) == 17
        assert STRATEGY_REGISTRY["deadlock"] is DeadlockStrategy

    def test_create_strategy(self) -> None:
        s = create_strategy("packet_loss", loss_percent=5)
        assert isinstance(s, PacketLossStrategy)
        assert s.loss_percent == 5

    def test_unknown_strategy(self) -> None:
        with pytest.raises(UnknownStrategyError) as exc_info:
            create_strategy("meteor_strike")
        assert isinstance(exc_info.value, KeyError)
        assert "meteor_strike" in str(exc_info.value)

    def test_list_by_category(self) -> None:
        network = list_strategies("network")
        assert len(network) == 5
        assert all(s["category"] == FaultCategory.NETWORK.value for s in network)
        assert len(list_strategies()) == 17
