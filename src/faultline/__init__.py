"""faultline — controlled fault injection for resilience testing.

faultline runs chaos experiments against live or staging services and
guarantees that every fault it injects is rolled back.

Core concepts
-------------
* **Strategy** — one kind of fault (latency, packet loss, a crashed node,
  a memory leak ...) with ``inject()``, ``recover()`` and
  ``health_check()``. Built-in strategies live in
  ``faultline.chaos.strategies``.

* **Experiment** — a hypothesis plus an ordered list of strategies,
  guarded by steady-state checks, abort conditions and a kill switch.

* **Engine** — ``FaultInjectionEngine`` starts SAFE and must be armed with
  an explicit confirmation code. It injects sequentially, always rolls
  back, and scores the run from 0 to 100.

Quick start::

    import asyncio
    from faultline import ARM_CONFIRMATION_CODE, ChaosExperiment, FaultInjectionEngine
    from faultline.chaos.strategies import NetworkLatencyStrategy

    async def main():
        engine = FaultInjectionEngine()
        engine.arm(ARM_CONFIRMATION_CODE)
        experiment = ChaosExperiment(
            "checkout-latency",
            strategies=[NetworkLatencyStrategy(latency_ms=300, target_urls=["checkout"])],
            hypothesis="checkout stays under 1s p99",
        )
        result = await engine.run_experiment(experiment)
        print(result.resilience_score)
        await engine.disarm()

    asyncio.run(main())
"""

from faultline.chaos.config import ARM_CONFIRMATION_CODE, EngineConfig
from faultline.chaos.engine import (
    AdmissionError,
    ChaosEngineError,
    FaultInjectionEngine,
    SteadyStateViolation,
)
from faultline.chaos.experiment import (
    AbortCondition,
    ChaosExperiment,
    KillSwitch,
    KillSwitchAction,
    KillSwitchTrigger,
    SteadyStateCheck,
)

__version__ = "0.1.0"

__all__ = [
    "ARM_CONFIRMATION_CODE",
    "AbortCondition",
    "AdmissionError",
    "ChaosEngineError",
    "ChaosExperiment",
    "EngineConfig",
    "FaultInjectionEngine",
    "KillSwitch",
    "KillSwitchAction",
    "KillSwitchTrigger",
    "SteadyStateCheck",
    "SteadyStateViolation",
    "__version__",
]
