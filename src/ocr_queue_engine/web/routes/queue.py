"""Invocation trigger: process one job per request."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ocr_queue_engine.observability import get_logger


if TYPE_CHECKING:
    from ocr_queue_engine.config import Settings
    from ocr_queue_engine.engine import Engine


__all__ = ["require_trigger_secret", "router"]


def require_trigger_secret(request: Request) -> None:
    """Reject the request unless it carries the configured bearer secret.

    No-op when ``trigger.secret`` is unset.

    Raises:
        HTTPException: 401 on a missing or wrong secret.
    """
    settings: Settings = request.app.state.settings
    expected = settings.trigger.secret
    if not expected:
        return

    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        token.strip().encode(),
        expected.encode(),
    ):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


router = APIRouter(
    prefix="/api/queue",
    tags=["queue"],
    dependencies=[Depends(require_trigger_secret)],
)


@router.post("/process")
async def process_queue(request: Request) -> dict[str, Any]:
    """Process at most one pending job.

    Every handled outcome (no work, completed, retry scheduled, failed)
    answers 200 with a summary. Unexpected errors reach the generic 500
    handler.
    """
    logger = get_logger(__name__)
    engine: Engine = request.app.state.engine

    result = await engine.processor.process_next()

    logger.info(
        "invocation_completed",
        outcome=result.outcome.value,
        job_id=result.job_id,
    )
    return result.to_dict()
