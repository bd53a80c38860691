"""Fault injection engine — runs experiments and guarantees rollback.

The engine starts in SAFE mode and refuses to inject anything until it is
armed with the confirmation code. An experiment run goes through:

1. admission (armed, enough capacity)
2. steady-state pre-check (raises on failure, nothing injected)
3. sequential injection, with abort conditions checked before each strategy
4. unconditional rollback of every active strategy
5. post-run health check and steady-state re-check (recorded, not raised)
6. scoring and history

Only admission and the pre-check raise. Every other failure ends up in the
returned :class:`ExperimentResult`.
"""

from __future__ import annotations

import asyncio
import contextlib
import hmac
import inspect
import logging
import time
import uuid
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from opentelemetry import trace
from opentelemetry.trace import Tracer

from faultline.alerts import AlertManager, KillSwitchAlert
from faultline.chaos.config import ARM_CONFIRMATION_CODE, EngineConfig
from faultline.chaos.experiment import (
    ChaosExperiment,
    KillSwitchAction,
    KillSwitchTrigger,
    SteadyStateCheck,
)
from faultline.chaos.strategies.base import ChaosStrategy
from faultline.chaos.types import (
    CheckStatus,
    ExperimentResult,
    HealthCheckItem,
    HealthCheckResult,
    InjectionResult,
    RecoveryResult,
    StrategyResult,
)
from faultline.tracing.conventions import (
    CHAOS_ROLLBACK_COUNT,
    CHAOS_ROLLBACK_FAILURES,
    ROLLBACK_SPAN,
)
from faultline.tracing.spans import (
    record_health,
    record_result,
    start_experiment_span,
    start_injection_span,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]

CERTIFICATE_THRESHOLD = 80
CONTAINMENT_THRESHOLD = 50
VIOLATION_PENALTY = 10
KILL_SWITCH_PENALTY = 30


class ChaosEngineError(Exception):
    """Base class for errors raised by the engine."""


class AdmissionError(ChaosEngineError):
    """Raised before any state change when a run cannot be admitted."""


class SteadyStateViolation(ChaosEngineError):
    """Raised when a pre-experiment steady-state check fails."""

    def __init__(self, check_name: str, reason: str = "") -> None:
        self.check_name = check_name
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Pre-experiment steady state check failed: {check_name}{detail}")


class EngineState(Enum):
    SAFE = "safe"
    ARMED = "armed"


@dataclass
class ActiveFault:
    """Handle yielded by :meth:`FaultInjectionEngine.fault`."""

    strategy: ChaosStrategy
    injection: InjectionResult | None = None
    recovery: RecoveryResult | None = None


async def _call(fn: Callable[[], Any]) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


def score_experiment(
    health_scores: Sequence[float],
    violation_count: int,
    kill_switch_triggered: bool,
) -> int:
    """Resilience score in [0, 100].

    Average immediate post-injection health, minus 10 per steady-state
    violation, minus 30 if the kill switch fired. 100 when nothing was
    injected.
    """
    avg = sum(health_scores) / len(health_scores) if health_scores else 100.0
    raw = avg - VIOLATION_PENALTY * violation_count - (KILL_SWITCH_PENALTY if kill_switch_triggered else 0)
    return int(min(100, max(0, round(raw))))


def recommendations_for(score: int, violations: Sequence[str]) -> list[str]:
    recommendations: list[str] = []
    if score < 50:
        recommendations.append("CRITICAL: System requires significant resilience improvements")
        recommendations.append("Implement circuit breakers for all external dependencies")
        recommendations.append("Add graceful degradation for non-critical features")
    elif score < 80:
        recommendations.append("Review and improve error handling in affected services")
        recommendations.append("Consider implementing bulkhead pattern")
    if violations:
        recommendations.append("Steady state violations detected - review monitoring thresholds")
    return recommendations


class FaultInjectionEngine:
    """Orchestrates chaos experiments against a live or staging system.

    One instance per host process; create it explicitly and pass it where it
    is needed. The active-strategy list is shared between experiment runs
    and the background health monitor, so every read of it is a snapshot.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        alert_manager: AlertManager | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.alerts = alert_manager or AlertManager()
        self._tracer = tracer or trace.get_tracer(__name__)
        self._state = EngineState.SAFE
        self._active: list[ChaosStrategy] = []
        self._reserved = 0
        self._history: list[ExperimentResult] = []
        self._event_log: list[dict[str, Any]] = []
        self._subscribers: list[EventCallback] = []
        self._monitor: asyncio.Task[None] | None = None
        # last recovery per strategy, so a run interrupted by disarm() still reports it
        self._last_recovery: weakref.WeakKeyDictionary[ChaosStrategy, RecoveryResult] = weakref.WeakKeyDictionary()

    # ------------------------------------------------------------------
    # Arming
    # ------------------------------------------------------------------

    def arm(self, confirmation_code: str) -> bool:
        """Enable fault injection. Returns False if the code does not match."""
        if not hmac.compare_digest(confirmation_code.encode(), ARM_CONFIRMATION_CODE.encode()):
            logger.error("Invalid confirmation code, engine stays %s", self._state.value)
            self._emit("arm_rejected")
            return False

        self._state = EngineState.ARMED
        self._start_monitor()
        logger.warning("Fault injection engine ARMED")
        self._emit("engine_armed")
        return True

    async def disarm(self) -> None:
        """Stop the monitor, roll back every active strategy, return to SAFE."""
        if self._state is EngineState.SAFE and not self._active:
            return

        logger.info("Disarming fault injection engine")
        self._state = EngineState.SAFE
        await self._stop_monitor()
        await self._rollback(list(self._active))
        logger.info("Fault injection engine DISARMED")
        self._emit("engine_disarmed")

    def is_armed(self) -> bool:
        return self._state is EngineState.ARMED

    @property
    def state(self) -> EngineState:
        return self._state

    # ------------------------------------------------------------------
    # Experiment execution
    # ------------------------------------------------------------------

    async def run_experiment(self, experiment: ChaosExperiment) -> ExperimentResult:
        """Run *experiment* end to end.

        Raises:
            AdmissionError: engine not armed, or the experiment would push the
                active strategy count over ``max_concurrent_strategies``.
            SteadyStateViolation: a pre-experiment check failed; nothing was
                injected.
        """
        count = len(experiment.strategies)
        self._admit(count)
        self._start_monitor()
        self._reserved += count
        introduced: list[ChaosStrategy] = []
        try:
            span = start_experiment_span(self._tracer, experiment)
            with trace.use_span(span, end_on_exit=True):
                result = await self._execute(experiment, introduced)
                record_result(span, result)
            return result
        finally:
            self._reserved -= count
            stranded = [s for s in introduced if s in self._active]
            if stranded:
                # only reached when the run was cancelled mid-flight
                logger.warning("Rolling back %d strategies left by an interrupted run", len(stranded))
                await self._rollback(stranded)

    async def _execute(
        self,
        experiment: ChaosExperiment,
        introduced: list[ChaosStrategy],
    ) -> ExperimentResult:
        started = time.monotonic()
        logger.info(
            "Chaos experiment '%s' starting: hypothesis=%r strategies=%s blast_radius=%s (%g%% impact)",
            experiment.name,
            experiment.hypothesis,
            [s.name for s in experiment.strategies],
            experiment.blast_radius.scope.value,
            experiment.blast_radius.estimated_impact_percent,
        )
        self._emit("experiment_started", experiment_id=experiment.id, experiment_name=experiment.name)

        for check in experiment.steady_state_checks:
            passed, reason = await self._probe(check)
            if not passed:
                logger.error("Steady state check '%s' failed before injection: %s", check.name, reason)
                self._emit(
                    "steady_state_violation",
                    experiment_id=experiment.id,
                    check=check.name,
                    reason=reason,
                )
                raise SteadyStateViolation(check.name, reason)
            logger.info("Steady state check '%s' passed", check.name)

        results: list[StrategyResult] = []
        recoveries: dict[ChaosStrategy, RecoveryResult] = {}
        kill_switch_triggered = False
        aborted_by: str | None = None

        try:
            for strategy in experiment.strategies:
                tripped = await self._first_abort(experiment)
                if tripped is not None:
                    logger.warning("Abort condition triggered: %s", tripped)
                    self._emit("abort_triggered", experiment_id=experiment.id, condition=tripped)
                    aborted_by = tripped
                    kill_switch_triggered = True
                    break
                # abort probes can await, so look at the arm state only after them
                if not self.is_armed():
                    aborted_by = "engine_disarmed"
                    kill_switch_triggered = True
                    break
                results.append(await self._inject(strategy, introduced))
        except Exception as exc:
            logger.error("Experiment '%s' failed during injection: %s", experiment.name, exc)
            self._emit("experiment_error", experiment_id=experiment.id, error=str(exc))
            kill_switch_triggered = True
            await self._trigger_kill_switch(experiment, KillSwitchTrigger.HEALTH_CHECK_FAIL, recoveries)

        recoveries.update(await self._rollback(list(self._active)))
        for strategy_result, strategy in zip(results, introduced):
            strategy_result.recovery = recoveries.get(strategy) or self._last_recovery.get(strategy)

        final_health = await self._aggregate_health(introduced)
        if not final_health.healthy:
            logger.warning("Post-experiment health check failed (score=%d)", final_health.overall_score)
            if await self._trigger_kill_switch(experiment, KillSwitchTrigger.RECOVERY_TIMEOUT, recoveries):
                kill_switch_triggered = True

        violations: list[str] = []
        for check in experiment.steady_state_checks:
            passed, reason = await self._probe(check)
            if passed:
                logger.info("Post-experiment steady state '%s' holds", check.name)
            else:
                logger.error("Post-experiment steady state '%s' violated: %s", check.name, reason)
                violations.append(check.name)

        result = self._build_result(
            experiment,
            results,
            violations,
            kill_switch_triggered,
            aborted_by,
            (time.monotonic() - started) * 1000,
        )
        self._history.append(result)
        self._emit(
            "experiment_completed",
            experiment_id=experiment.id,
            resilience_score=result.resilience_score,
            hypothesis_validated=result.hypothesis_validated,
        )
        return result

    async def run_strategy(
        self,
        strategy: ChaosStrategy,
        workload: Callable[[], Awaitable[Any] | Any],
    ) -> StrategyResult:
        """Inject *strategy*, run *workload*, then always recover and health-check.

        Exceptions from *workload* propagate once the fault is released.

        Raises:
            AdmissionError: engine not armed or at capacity; nothing is
                injected or health-checked.
        """
        self._admit(1)
        handle: ActiveFault | None = None
        try:
            async with self.fault(strategy) as handle:
                await _call(workload)
        finally:
            health = await strategy.health_check()
            self._emit("strategy_completed", strategy=strategy.name, healthy=health.healthy)

        if handle is None or handle.injection is None:
            raise ChaosEngineError(f"{strategy.name} was never injected")
        return StrategyResult(
            strategy_name=strategy.name,
            injection=handle.injection,
            health_check=health,
            recovery=handle.recovery,
        )

    @contextlib.asynccontextmanager
    async def fault(self, strategy: ChaosStrategy) -> AsyncIterator[ActiveFault]:
        """Hold *strategy* injected for the duration of an ``async with`` block.

        The strategy is recovered on every exit path, including a failed
        injection.
        """
        self._admit(1)
        self._start_monitor()
        self._reserved += 1
        handle = ActiveFault(strategy)
        logger.info(
            "Running strategy %s (blast radius %s, %g%% impact)",
            strategy.name,
            strategy.blast_radius.scope.value,
            strategy.blast_radius.estimated_impact_percent,
        )
        try:
            self._active.append(strategy)
            handle.injection = await strategy.inject()
            yield handle
        finally:
            self._reserved -= 1
            recoveries = await self._rollback([strategy])
            handle.recovery = recoveries.get(strategy)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> HealthCheckResult:
        """Aggregate health of every currently active strategy."""
        return await self._aggregate_health(list(self._active))

    async def _aggregate_health(self, strategies: Sequence[ChaosStrategy]) -> HealthCheckResult:
        checks: list[HealthCheckItem] = []
        for strategy in strategies:
            try:
                health = await strategy.health_check()
            except Exception as exc:
                checks.append(HealthCheckItem(f"{strategy.name}_health", CheckStatus.FAIL, str(exc)))
                continue
            checks.extend(health.checks)
        return HealthCheckResult.from_checks(checks)

    def _start_monitor(self) -> None:
        if self._state is not EngineState.ARMED:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet; the first run starts the monitor
            return
        if self._monitor is not None and not self._monitor.done() and self._monitor.get_loop() is loop:
            return
        self._monitor = loop.create_task(self._monitor_loop(), name="faultline-health-monitor")

    async def _stop_monitor(self) -> None:
        task, self._monitor = self._monitor, None
        if task is None or task.done():
            return
        loop = task.get_loop()
        if loop is asyncio.get_running_loop():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        elif not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)

    async def _monitor_loop(self) -> None:
        interval = self.config.health_check_interval_seconds
        while self._state is EngineState.ARMED:
            await asyncio.sleep(interval)
            snapshot = list(self._active)
            if not snapshot:
                continue
            try:
                health = await self._aggregate_health(snapshot)
                if not health.healthy:
                    logger.warning(
                        "Health check failed during active experiment (score=%d, %d active)",
                        health.overall_score,
                        len(snapshot),
                    )
                    self._emit("health_failed", health=health.to_dict())
            except Exception:
                logger.exception("Health monitor tick failed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _admit(self, count: int) -> None:
        if not self.is_armed():
            raise AdmissionError("Engine not armed. Call arm() first.")
        # in-flight runs reserve their slots up front so parallel callers
        # cannot both pass admission
        occupied = max(len(self._active), self._reserved)
        if occupied + count > self.config.max_concurrent_strategies:
            raise AdmissionError(
                f"Would exceed max concurrent strategies ({self.config.max_concurrent_strategies}): "
                f"{occupied} in use, {count} requested"
            )

    async def _probe(self, check: SteadyStateCheck) -> tuple[bool, str]:
        try:
            passed = await asyncio.wait_for(_call(check.check), timeout=check.timeout_seconds)
        except asyncio.TimeoutError:
            return False, f"timed out after {check.timeout_seconds}s"
        except Exception as exc:
            return False, f"raised {exc!r}"
        return (True, "") if passed else (False, "returned False")

    async def _first_abort(self, experiment: ChaosExperiment) -> str | None:
        for abort in experiment.abort_conditions:
            if await _call(abort.condition):
                return abort.name
        return None

    async def _inject(self, strategy: ChaosStrategy, introduced: list[ChaosStrategy]) -> StrategyResult:
        span = start_injection_span(self._tracer, strategy)
        with trace.use_span(span, end_on_exit=True):
            # registered before inject() so a partial injection is rolled back
            self._active.append(strategy)
            introduced.append(strategy)
            injection = await strategy.inject()
            health = await strategy.health_check()
            record_health(span, health)
        self._emit("strategy_injected", strategy=strategy.name, health_score=health.overall_score)
        return StrategyResult(strategy_name=strategy.name, injection=injection, health_check=health)

    async def _rollback(self, strategies: Sequence[ChaosStrategy]) -> dict[ChaosStrategy, RecoveryResult]:
        """Recover each strategy, continuing past failures."""
        if not strategies:
            return {}
        logger.info("Rolling back %d strategies", len(strategies))
        recoveries: dict[ChaosStrategy, RecoveryResult] = {}
        failures = 0
        span = self._tracer.start_span(ROLLBACK_SPAN, attributes={CHAOS_ROLLBACK_COUNT: len(strategies)})
        with trace.use_span(span, end_on_exit=True):
            for strategy in strategies:
                try:
                    recovery = await strategy.recover()
                except Exception as exc:
                    recovery = RecoveryResult(
                        success=False,
                        strategy_name=strategy.name,
                        recovery_time_ms=0.0,
                        health_restored=False,
                        message=f"Recovery raised: {exc}",
                    )
                if strategy in self._active:
                    self._active.remove(strategy)
                recoveries[strategy] = recovery
                self._last_recovery[strategy] = recovery
                if recovery.success:
                    self._emit("strategy_recovered", strategy=strategy.name)
                else:
                    failures += 1
                    logger.warning("%s recovery failed: %s", strategy.name, recovery.message)
                    self._emit("strategy_recovery_failed", strategy=strategy.name, error=recovery.message)
            span.set_attribute(CHAOS_ROLLBACK_FAILURES, failures)
        return recoveries

    async def _trigger_kill_switch(
        self,
        experiment: ChaosExperiment,
        trigger: KillSwitchTrigger,
        recoveries: dict[ChaosStrategy, RecoveryResult],
    ) -> bool:
        """Dispatch the experiment's kill-switch action. Returns True if it fired."""
        kill_switch = experiment.kill_switch
        if not (self.config.kill_switch_enabled and kill_switch.enabled and trigger in kill_switch.trigger_on):
            return False

        logger.warning(
            "[KILL SWITCH] %s triggered by %s, action=%s",
            experiment.name,
            trigger.value,
            kill_switch.action.value,
        )
        self._emit(
            "kill_switch_triggered",
            experiment_id=experiment.id,
            trigger=trigger.value,
            action=kill_switch.action.value,
        )

        if kill_switch.action is KillSwitchAction.ROLLBACK:
            recoveries.update(await self._rollback(list(self._active)))
        elif kill_switch.action is KillSwitchAction.PAUSE:
            logger.warning("[KILL SWITCH] experiment paused, %d faults left in place", len(self._active))
        elif kill_switch.action is KillSwitchAction.ALERT:
            alert = KillSwitchAlert(
                experiment_id=experiment.id,
                experiment_name=experiment.name,
                trigger=trigger.value,
                action=kill_switch.action.value,
                active_strategies=tuple(self.get_active_strategies()),
            )
            await asyncio.to_thread(self.alerts.notify, alert, kill_switch.notify_channels)
        return True

    def _build_result(
        self,
        experiment: ChaosExperiment,
        results: list[StrategyResult],
        violations: list[str],
        kill_switch_triggered: bool,
        aborted_by: str | None,
        duration_ms: float,
    ) -> ExperimentResult:
        health_scores = [r.health_check.overall_score for r in results]
        score = score_experiment(health_scores, len(violations), kill_switch_triggered)
        result = ExperimentResult(
            experiment_id=experiment.id,
            experiment_name=experiment.name,
            duration_ms=duration_ms,
            strategies=results,
            hypothesis_validated=not violations and not kill_switch_triggered,
            blast_radius_contained=all(s >= CONTAINMENT_THRESHOLD for s in health_scores),
            kill_switch_triggered=kill_switch_triggered,
            resilience_score=score,
            recommendations=recommendations_for(score, violations),
            violations=violations,
            aborted_by=aborted_by,
            certificate_id=f"FLC-{uuid.uuid4().hex[:12].upper()}" if score >= CERTIFICATE_THRESHOLD else None,
        )
        logger.info(
            "Experiment '%s' finished: hypothesis %s, blast radius %s, kill switch %s, resilience %d/100",
            experiment.name,
            "VALIDATED" if result.hypothesis_validated else "INVALIDATED",
            "CONTAINED" if result.blast_radius_contained else "EXCEEDED",
            "TRIGGERED" if kill_switch_triggered else "not triggered",
            score,
        )
        return result

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, callback: EventCallback) -> None:
        """Register *callback* to receive every engine event, in order."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(callback)

    def _emit(self, event: str, **details: Any) -> None:
        entry: dict[str, Any] = {"event": event, "timestamp": time.time(), **details}
        self._event_log.append(entry)
        logger.debug("chaos event: %s", entry)
        for callback in list(self._subscribers):
            try:
                callback(entry)
            except Exception:
                logger.warning("Event subscriber %r failed", callback, exc_info=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_active_strategies(self) -> list[str]:
        return [s.name for s in self._active]

    def get_history(self) -> list[ExperimentResult]:
        return list(self._history)

    @property
    def event_log(self) -> list[dict[str, Any]]:
        return list(self._event_log)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "active_strategies": self.get_active_strategies(),
            "experiments_run": len(self._history),
            "config": self.config.model_dump(),
        }
