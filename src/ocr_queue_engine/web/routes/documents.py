"""Document status and submission endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from ocr_queue_engine.observability import get_logger
from ocr_queue_engine.queue.submission import submit_document
from ocr_queue_engine.stores.exceptions import DocumentNotFoundError


if TYPE_CHECKING:
    from ocr_queue_engine.engine import Engine


__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["documents"])


@router.get("/documents/{document_id}")
async def get_document(request: Request, document_id: str) -> dict[str, Any]:
    """Get a document with its OCR status and text."""
    engine: Engine = request.app.state.engine
    document = await engine.documents.get(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)
    return document.to_dict()


@router.post("/documents/{document_id}/process", status_code=202)
async def process_document(request: Request, document_id: str) -> dict[str, Any]:
    """Queue a document for OCR and start processing in the background.

    Answers 404 for unknown documents, 409 for documents that are
    finished or already queued, and 402 when the owner has no credits
    left. The background kick is best-effort: a queued job is
    picked up by the next invocation either way.

    Args:
        request: The incoming HTTP request.
        document_id: The document to process.

    Returns:
        A confirmation with the new job.
    """
    logger = get_logger(__name__)
    engine: Engine = request.app.state.engine

    job = await submit_document(
        document_id,
        jobs=engine.jobs,
        documents=engine.documents,
        ledger=engine.ledger,
        credit_cost=engine.settings.queue.credit_cost,
    )

    try:
        await engine.runner.kick()
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "invocation_kick_failed",
            job_id=job.id,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    return {
        "message": "OCR job queued",
        "job": job.to_dict(),
    }
