"""Health check and readiness endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse


if TYPE_CHECKING:
    from ocr_queue_engine.engine import Engine


__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(_request: Request) -> dict[str, Any]:
    """Liveness probe.

    Returns 200 if the service is running. Does not check external
    dependencies.
    """
    from ocr_queue_engine import __version__

    return {
        "status": "ok",
        "version": __version__,
    }


@router.get("/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness probe.

    Checks that the database answers and the background runner is
    accepting work.

    Returns:
        200 with status details if ready, 503 if not.
    """
    engine: Engine = request.app.state.engine
    checks: dict[str, bool] = {"runner": engine.runner.is_running}

    try:
        checks["database"] = await engine.ping()
    except Exception:  # noqa: BLE001
        checks["database"] = False

    all_ready = all(checks.values())
    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
    )
