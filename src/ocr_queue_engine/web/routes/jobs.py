"""Job listing and status endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Query, Request

from ocr_queue_engine.stores.models import JobStatus  # noqa: TC001


if TYPE_CHECKING:
    from ocr_queue_engine.engine import Engine


__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["jobs"])


@router.get("/jobs")
async def list_jobs(
    request: Request,
    status: JobStatus | None = Query(default=None),  # noqa: B008
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    """List OCR jobs, newest first.

    Args:
        request: The incoming HTTP request.
        status: Filter by job status (pending, processing, completed,
            failed).
        limit: Maximum number of jobs to return.
    """
    engine: Engine = request.app.state.engine
    jobs = await engine.jobs.list_by_status(status, limit=limit)
    return [job.to_dict() for job in jobs]


@router.get("/jobs/{job_id}")
async def get_job(request: Request, job_id: str) -> dict[str, Any]:
    """Get a single job. Unknown IDs answer 404."""
    engine: Engine = request.app.state.engine
    job = await engine.jobs.get(job_id)
    return job.to_dict()
