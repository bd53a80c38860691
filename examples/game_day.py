"""
Game Day Example — Verify a checkout flow survives dependency failures.

Arms the engine, runs a latency experiment with a steady-state check,
then holds a dependency timeout while real calls fall back to a cache.

Run:
    pip install faultline
    python examples/game_day.py
"""

import asyncio

from faultline import ARM_CONFIRMATION_CODE, ChaosExperiment, FaultInjectionEngine, SteadyStateCheck
from faultline.chaos.strategies import (
    DependencyTimeoutError,
    DependencyTimeoutStrategy,
    NetworkLatencyStrategy,
    PacketLossStrategy,
)


def checkout_available() -> bool:
    return True


async def fetch_recommendations() -> str:
    await asyncio.sleep(0.5)
    return "personalised"


async def main() -> None:
    engine = FaultInjectionEngine()
    engine.subscribe(lambda event: print(f"  [event] {event['event']}"))

    print("Game Day Example")
    print("=" * 60)

    # ── Arm ─────────────────────────────────────────────────────────────
    if not engine.arm(ARM_CONFIRMATION_CODE):
        raise SystemExit("engine refused to arm")

    # ── Experiment: degraded network in front of the gateway ───────────
    experiment = ChaosExperiment(
        name="gateway-degradation",
        strategies=[
            NetworkLatencyStrategy(latency_ms=300, jitter_ms=50, target_urls=["api-gateway"]),
            PacketLossStrategy(loss_percent=2, target_urls=["api-gateway"]),
        ],
        hypothesis="Checkout stays available with 300ms extra latency and 2% loss",
        steady_state_checks=[SteadyStateCheck("checkout_available", checkout_available)],
    )
    result = await engine.run_experiment(experiment)

    print()
    print(f"Experiment:       {result.experiment_name}")
    print(f"Hypothesis held:  {result.hypothesis_validated}")
    print(f"Resilience score: {result.resilience_score}/100")
    if result.certificate_id:
        print(f"Certificate:      {result.certificate_id}")
    for rec in result.recommendations:
        print(f"  - {rec}")

    # ── Held fault: the recommendations service stops answering ────────
    print()
    print("Holding a dependency timeout...")
    served = []
    dependency = DependencyTimeoutStrategy("recommendations-api", timeout_ms=100)
    async with engine.fault(dependency):
        for _ in range(3):
            try:
                served.append(await dependency.simulate_call(fetch_recommendations))
            except DependencyTimeoutError:
                served.append("popular-items")
    print(f"Served: {served}")

    await engine.disarm()
    print()
    print("─" * 60)
    print("Chaos testing reveals how your service fails — before users do.")


if __name__ == "__main__":
    asyncio.run(main())
