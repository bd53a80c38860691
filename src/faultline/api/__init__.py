"""
REST API for faultline.

Requires the ``api`` extra (``pip install faultline[api]``). Run with::

    uvicorn faultline.api.server:app

Endpoints:
    GET  /health                          — Service health check
    GET  /api/v1/engine                   — Engine state and active faults
    POST /api/v1/engine/arm               — Arm with the confirmation code
    POST /api/v1/engine/disarm            — Roll back everything, back to SAFE
    GET  /api/v1/engine/health            — Aggregate health of active faults
    GET  /api/v1/engine/events            — Engine event log
    POST /api/v1/experiments              — Run an ad-hoc experiment
    GET  /api/v1/experiments              — Experiment history
    GET  /api/v1/strategies               — Registered strategies
    GET  /api/v1/templates                — Library templates
    POST /api/v1/templates/{id}/run       — Run a library template
"""

from __future__ import annotations


def create_app(config=None):  # type: ignore[no-untyped-def]
    """Create the FastAPI application (requires ``faultline[api]`` extra)."""
    from faultline.api.server import create_app as _factory

    return _factory(config)
