"""FastAPI REST API server for faultline.

Exposes one :class:`FaultInjectionEngine` over HTTP so game days can be
driven from a browser or a runbook. The engine is created in the app
lifespan and disarmed, with full rollback, on shutdown.

Run with::

    uvicorn faultline.api.server:app
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, HTTPException, Query

from faultline import __version__
from faultline.api.models import (
    ArmRequest,
    ExperimentRequest,
    KillSwitchRequest,
    TemplateRunRequest,
)
from faultline.chaos.config import EngineConfig
from faultline.chaos.engine import (
    AdmissionError,
    FaultInjectionEngine,
    SteadyStateViolation,
)
from faultline.chaos.experiment import ChaosExperiment, KillSwitch
from faultline.chaos.library import ChaosLibrary
from faultline.chaos.loader import load_engine_config
from faultline.chaos.strategies import UnknownStrategyError, create_strategy, list_strategies
from faultline.chaos.types import ExperimentResult

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Process state (reset on restart)
# ---------------------------------------------------------------------------

_config: EngineConfig | None = None
_engine: FaultInjectionEngine | None = None
_library: ChaosLibrary | None = None
_start_time: float = 0.0


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global _engine, _library, _start_time
    config = _config
    if config is None and os.environ.get("FAULTLINE_CONFIG"):
        config = load_engine_config(os.environ["FAULTLINE_CONFIG"])
    _engine = FaultInjectionEngine(config)
    _library = ChaosLibrary()
    _start_time = time.time()
    logger.info("faultline API started, engine is %s", _engine.state.value)
    yield
    # never leave faults behind when the server goes away
    await _engine.disarm()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_engine() -> FaultInjectionEngine:
    assert _engine is not None, "Engine not initialised"
    return _engine


def _get_library() -> ChaosLibrary:
    assert _library is not None, "ChaosLibrary not initialised"
    return _library


def _kill_switch(body: KillSwitchRequest | None) -> KillSwitch | None:
    return body.build() if body is not None else None


async def _run(experiment: ChaosExperiment) -> ExperimentResult:
    try:
        return await _get_engine().run_experiment(experiment)
    except AdmissionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except SteadyStateViolation as e:
        raise HTTPException(status_code=412, detail=str(e)) from e


router = APIRouter()


# =========================================================================
# Health
# =========================================================================


@router.get("/health", tags=["health"])
def health_check() -> dict[str, Any]:
    """Service health check."""
    return {
        "status": "ok",
        "armed": _get_engine().is_armed(),
        "uptime_seconds": round(time.time() - _start_time, 1),
    }


# =========================================================================
# Engine
# =========================================================================


@router.get("/api/v1/engine", tags=["engine"])
def engine_state() -> dict[str, Any]:
    return _get_engine().to_dict()


@router.post("/api/v1/engine/arm", tags=["engine"])
async def arm_engine(body: ArmRequest) -> dict[str, Any]:
    """Arm the engine. Responds 403 when the confirmation code is wrong."""
    engine = _get_engine()
    if not engine.arm(body.confirmation_code):
        raise HTTPException(status_code=403, detail="Invalid confirmation code")
    return engine.to_dict()


@router.post("/api/v1/engine/disarm", tags=["engine"])
async def disarm_engine() -> dict[str, Any]:
    engine = _get_engine()
    await engine.disarm()
    return engine.to_dict()


@router.get("/api/v1/engine/health", tags=["engine"])
async def engine_health() -> dict[str, Any]:
    """Aggregate health of the currently active strategies."""
    health = await _get_engine().health_check()
    return health.to_dict()


@router.get("/api/v1/engine/events", tags=["engine"])
def engine_events(
    limit: int = Query(100, ge=1, le=1000, description="Most recent events to return"),
) -> dict[str, Any]:
    events = _get_engine().event_log[-limit:]
    return {"events": events, "count": len(events)}


# =========================================================================
# Experiments
# =========================================================================


@router.post("/api/v1/experiments", tags=["experiments"], status_code=201)
async def run_experiment(body: ExperimentRequest) -> dict[str, Any]:
    """Build an experiment from registry strategies and run it to completion."""
    strategies = []
    for spec in body.strategies:
        try:
            strategies.append(create_strategy(spec.name, **spec.params))
        except UnknownStrategyError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except (TypeError, ValueError) as e:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid parameters for strategy '{spec.name}': {e}",
            ) from e

    experiment = ChaosExperiment(
        name=body.name,
        strategies=strategies,
        hypothesis=body.hypothesis,
        kill_switch=_kill_switch(body.kill_switch),
    )
    result = await _run(experiment)
    return result.to_dict()


@router.get("/api/v1/experiments", tags=["experiments"])
def list_experiments() -> dict[str, Any]:
    """Completed experiment history, oldest first."""
    history = _get_engine().get_history()
    return {"experiments": [r.to_dict() for r in history], "count": len(history)}


# =========================================================================
# Catalogue
# =========================================================================


@router.get("/api/v1/strategies", tags=["catalogue"])
def get_strategies(
    category: str | None = Query(None, description="Filter by fault category"),
) -> dict[str, Any]:
    strategies = list_strategies(category)
    return {"strategies": strategies, "count": len(strategies)}


@router.get("/api/v1/templates", tags=["catalogue"])
def get_templates(
    category: str | None = Query(None),
    severity: str | None = Query(None),
    tag: str | None = Query(None),
) -> dict[str, Any]:
    templates = _get_library().list_templates(category=category, severity=severity, tag=tag)
    return {"templates": [t.to_dict() for t in templates], "count": len(templates)}


@router.post("/api/v1/templates/{template_id}/run", tags=["catalogue"], status_code=201)
async def run_template(template_id: str, body: TemplateRunRequest | None = None) -> dict[str, Any]:
    """Instantiate a library template with fresh strategies and run it."""
    template = _get_library().get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")

    body = body or TemplateRunRequest()
    overrides: dict[str, Any] = {"strategy_params": body.strategy_params}
    if body.name:
        overrides["name"] = body.name
    if body.kill_switch is not None:
        overrides["kill_switch"] = body.kill_switch.build()
    try:
        experiment = template.instantiate(**overrides)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid template overrides: {e}") from e

    result = await _run(experiment)
    return result.to_dict()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: EngineConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    *config* applies to the engine created when the app starts; without it
    the ``FAULTLINE_CONFIG`` YAML file is used if set, else the defaults.
    """
    global _config
    _config = config
    application = FastAPI(
        title="faultline API",
        description="Controlled fault injection for resilience testing",
        version=__version__,
        lifespan=_lifespan,
    )
    application.include_router(router)
    return application


app = create_app()
