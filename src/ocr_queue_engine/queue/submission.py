"""Queue a document for OCR once its owner can pay for it."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ocr_queue_engine.stores.exceptions import (
    DocumentNotFoundError,
    DocumentNotSubmittableError,
    InsufficientCreditsError,
)
from ocr_queue_engine.stores.models import DocumentStatus


if TYPE_CHECKING:
    from ocr_queue_engine.stores.base import CreditLedger, DocumentStore, JobStore
    from ocr_queue_engine.stores.models import OcrJob


__all__ = [
    "INSUFFICIENT_CREDITS_MESSAGE",
    "submit_document",
]


INSUFFICIENT_CREDITS_MESSAGE = "Insufficient credits"

logger = structlog.get_logger(__name__)


async def submit_document(
    document_id: str,
    *,
    jobs: JobStore,
    documents: DocumentStore,
    ledger: CreditLedger,
    credit_cost: int = 1,
) -> OcrJob:
    """Create a pending OCR job for ``document_id``.

    The balance check only gates submission; the debit happens when the
    job completes.

    Args:
        document_id: Document to process.
        jobs: Job store receiving the new job.
        documents: Document store used for lookup and rejection.
        ledger: Ledger holding the owner's balance.
        credit_cost: Credits one completed document costs.

    Returns:
        The newly created pending job.

    Raises:
        DocumentNotFoundError: The document does not exist.
        DocumentNotSubmittableError: The document is already completed or
            failed, or has a pending or processing job.
        InsufficientCreditsError: The owner cannot pay. The document is
            marked failed with "Insufficient credits".
        UserNotFoundError: The owner has no credit account.
    """
    log = logger.bind(document_id=document_id)

    document = await documents.get(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)
    if document.status.is_terminal:
        raise DocumentNotSubmittableError(
            document_id,
            f"document is already {document.status.value}",
        )
    if await jobs.has_active_job(document_id):
        raise DocumentNotSubmittableError(document_id, "a job is already queued")

    balance = await ledger.get_balance(document.user_id)
    if balance < credit_cost:
        await documents.update_status(
            document_id,
            DocumentStatus.FAILED,
            error_message=INSUFFICIENT_CREDITS_MESSAGE,
        )
        log.warning(
            "submission_rejected",
            user_id=document.user_id,
            balance=balance,
            required=credit_cost,
        )
        raise InsufficientCreditsError(
            document.user_id,
            required=credit_cost,
            balance=balance,
        )

    job = await jobs.create(document_id)
    log.info("job_submitted", job_id=job.id, user_id=document.user_id)
    return job
