"""Queue processor: claim one job and drive it to its next state.

One call to ``QueueProcessor.process_next`` is one invocation. It claims
at most one eligible job, validates the job's document, downloads the file,
extracts its text and then either completes the job, schedules a retry
with exponential backoff, or fails the job permanently.

Failures are sorted into three groups:

- Integrity failures (missing document or file path, or a document
  that is already completed or failed) fail immediately.
- Content blocks from the safety filter fail immediately unless
  ``retry_content_blocked`` is set.
- Everything else that goes wrong while downloading or extracting is
  transient and goes through the retry policy.

Database errors raised by the job store propagate to the caller.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from ocr_queue_engine.extraction.exceptions import (
    ContentBlockedError,
    ExtractionError,
)
from ocr_queue_engine.observability import job_log_context
from ocr_queue_engine.queue.models import InvocationOutcome, InvocationResult
from ocr_queue_engine.queue.retry import Retry, RetryPolicy
from ocr_queue_engine.storage.exceptions import StorageError
from ocr_queue_engine.stores.models import DocumentStatus


if TYPE_CHECKING:
    from collections.abc import Callable

    from ocr_queue_engine.extraction.client import ExtractionClient
    from ocr_queue_engine.extraction.models import ExtractedText
    from ocr_queue_engine.storage.client import StorageClient, StoredFile
    from ocr_queue_engine.stores.base import CreditLedger, DocumentStore, JobStore
    from ocr_queue_engine.stores.models import Document, OcrJob


__all__ = [
    "MAX_RETRIES_MESSAGE",
    "NO_WORK_MESSAGE",
    "QueueProcessor",
]


NO_WORK_MESSAGE = "No pending jobs"
MAX_RETRIES_MESSAGE = "Maximum retry attempts exceeded"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _AttemptFailedError(Exception):
    """One attempt failed during download or extraction."""

    def __init__(self, detail: str, *, retryable: bool = True) -> None:
        super().__init__(detail)
        self.detail = detail
        self.retryable = retryable


class QueueProcessor:
    """Process the OCR job queue one job per invocation.

    Safe to run from many concurrent invocations: the job store's claim
    guarantees each job is handed to exactly one of them.

    Example:
        ```python
        processor = QueueProcessor(
            jobs=PostgresJobStore(db),
            documents=PostgresDocumentStore(db),
            ledger=PostgresCreditLedger(db),
            storage=storage_client,
            extractor=extraction_client,
        )
        result = await processor.process_next()
        print(result.outcome, result.message)
        ```

    Attributes:
        policy: Retry policy applied to transient failures.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobStore,
        documents: DocumentStore,
        ledger: CreditLedger,
        storage: StorageClient,
        extractor: ExtractionClient,
        policy: RetryPolicy | None = None,
        download_timeout: float = 90.0,
        extraction_timeout: float = 180.0,
        retry_content_blocked: bool = False,
        credit_cost: int = 1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._jobs = jobs
        self._documents = documents
        self._ledger = ledger
        self._storage = storage
        self._extractor = extractor
        self.policy = policy or RetryPolicy()
        self._download_timeout = download_timeout
        self._extraction_timeout = extraction_timeout
        self._retry_content_blocked = retry_content_blocked
        self._credit_cost = credit_cost
        self._clock = clock
        self._logger = structlog.get_logger(__name__)

    async def process_next(self) -> InvocationResult:
        """Claim the next eligible job and drive it to its next state.

        Returns:
            What this invocation did. ``NO_WORK`` when nothing was eligible.

        Raises:
            StoreError: The job store failed. The claimed job, if any, is
                left for an operator to inspect.
        """
        job = await self._jobs.claim_next_eligible_job()
        if job is None:
            self._logger.debug("no_pending_jobs")
            return InvocationResult(
                outcome=InvocationOutcome.NO_WORK,
                message=NO_WORK_MESSAGE,
            )

        with job_log_context(job_id=job.id, document_id=job.document_id):
            self._logger.info("job_claimed", previous_attempts=job.attempts)
            return await self._process(job)

    async def _process(self, job: OcrJob) -> InvocationResult:
        document = await self._documents.get(job.document_id)
        if document is None:
            return await self._fail_integrity(
                job,
                None,
                f"Document {job.document_id} not found",
            )
        if not document.file_path:
            return await self._fail_integrity(
                job,
                document,
                f"Document {document.id} has no file path",
            )
        if document.status.is_terminal:
            return await self._fail_integrity(
                job,
                None,
                f"Document {document.id} is already {document.status.value}",
            )

        attempt = job.attempts + 1
        if self.policy.is_exhausted(attempt):
            return await self._fail_exhausted(job, document)

        with job_log_context(job_id=job.id, attempt=attempt):
            await self._jobs.mark_processing(job.id, attempt)
            await self._update_document(
                document.id,
                DocumentStatus.PROCESSING,
                error_message=None,
            )
            self._logger.info("attempt_started", file_path=document.file_path)

            try:
                stored = await self._download(document.file_path)
                extracted = await self._extract(stored)
            except _AttemptFailedError as failure:
                return await self._handle_failure(job, document, attempt, failure)

            return await self._complete(job, document, attempt, extracted)

    async def _download(self, file_path: str) -> StoredFile:
        try:
            stored = await asyncio.wait_for(
                self._storage.download(file_path),
                timeout=self._download_timeout,
            )
        except TimeoutError as exc:
            detail = f"Failed to download file: timed out after {self._download_timeout}s"
            raise _AttemptFailedError(detail) from exc
        except StorageError as exc:
            detail = f"Failed to download file: {exc}"
            raise _AttemptFailedError(detail) from exc
        except Exception as exc:
            self._logger.exception("download_unexpected_error")
            detail = f"Failed to download file: {exc}"
            raise _AttemptFailedError(detail) from exc

        self._logger.debug(
            "file_downloaded",
            size=stored.size,
            mime_type=stored.mime_type,
        )
        return stored

    async def _extract(self, stored: StoredFile) -> ExtractedText:
        try:
            return await asyncio.wait_for(
                self._extractor.extract(stored.content, stored.mime_type),
                timeout=self._extraction_timeout,
            )
        except TimeoutError as exc:
            detail = f"Text extraction timed out after {self._extraction_timeout}s"
            raise _AttemptFailedError(detail) from exc
        except ContentBlockedError as exc:
            raise _AttemptFailedError(
                str(exc),
                retryable=self._retry_content_blocked,
            ) from exc
        except ExtractionError as exc:
            raise _AttemptFailedError(str(exc)) from exc
        except Exception as exc:
            self._logger.exception("extraction_unexpected_error")
            raise _AttemptFailedError(f"Text extraction failed: {exc}") from exc

    async def _complete(
        self,
        job: OcrJob,
        document: Document,
        attempt: int,
        extracted: ExtractedText,
    ) -> InvocationResult:
        updated = await self._documents.update_status(
            document.id,
            DocumentStatus.COMPLETED,
            ocr_text=extracted.text,
            word_count=extracted.word_count,
            processing_time=round(extracted.duration_seconds, 3),
            error_message=None,
        )
        await self._jobs.mark_completed(job.id)

        if updated:
            await self._charge(document.user_id)
        else:
            # text was not stored; nothing to bill
            self._logger.warning("document_completion_not_applied")

        self._logger.info(
            "job_completed",
            word_count=extracted.word_count,
            processing_time=round(extracted.duration_seconds, 3),
        )
        return InvocationResult(
            outcome=InvocationOutcome.COMPLETED,
            message="Job completed",
            job_id=job.id,
            document_id=document.id,
            attempt=attempt,
        )

    async def _charge(self, user_id: str) -> None:
        # the text is already delivered; a failed debit must not undo it
        try:
            balance = await self._ledger.deduct_credit(user_id, self._credit_cost)
        except Exception as exc:
            self._logger.exception(
                "credit_deduction_failed",
                user_id=user_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            self._logger.debug("credit_deducted", user_id=user_id, balance=balance)

    async def _handle_failure(
        self,
        job: OcrJob,
        document: Document,
        attempt: int,
        failure: _AttemptFailedError,
    ) -> InvocationResult:
        if not failure.retryable:
            self._logger.warning("attempt_failed_permanently", error=failure.detail)
            return await self._fail_permanent(
                job,
                document,
                failure.detail,
                attempt=attempt,
            )

        decision = self.policy.decide(attempt)
        if self.policy.is_final(attempt) or not isinstance(decision, Retry):
            self._logger.warning(
                "retries_exhausted",
                error=failure.detail,
                max_retries=self.policy.max_retries,
            )
            return await self._fail_permanent(
                job,
                document,
                failure.detail,
                attempt=attempt,
            )

        not_before = decision.not_before(self._clock())
        await self._jobs.schedule_retry(job.id, failure.detail, not_before)
        await self._update_document(
            document.id,
            DocumentStatus.PROCESSING,
            error_message=f"Attempt {attempt} failed, retrying",
        )
        self._logger.warning(
            "retry_scheduled",
            error=failure.detail,
            delay_seconds=decision.delay.total_seconds(),
            not_before=not_before.isoformat(),
        )
        return InvocationResult(
            outcome=InvocationOutcome.RETRY_SCHEDULED,
            message=f"Attempt {attempt} failed, retry scheduled",
            job_id=job.id,
            document_id=document.id,
            attempt=attempt,
            error=failure.detail,
        )

    async def _fail_permanent(
        self,
        job: OcrJob,
        document: Document | None,
        detail: str,
        *,
        attempt: int | None = None,
        document_message: str | None = None,
    ) -> InvocationResult:
        await self._jobs.mark_failed_permanent(job.id, detail)
        if document is not None:
            await self._update_document(
                document.id,
                DocumentStatus.FAILED,
                error_message=document_message or f"OCR failed: {detail}",
            )
        return InvocationResult(
            outcome=InvocationOutcome.FAILED,
            message="Job failed",
            job_id=job.id,
            document_id=job.document_id,
            attempt=attempt,
            error=detail,
        )

    async def _fail_integrity(
        self,
        job: OcrJob,
        document: Document | None,
        detail: str,
    ) -> InvocationResult:
        self._logger.error("job_integrity_failure", error=detail)
        return await self._fail_permanent(
            job,
            document,
            detail,
            document_message=detail,
        )

    async def _fail_exhausted(
        self,
        job: OcrJob,
        document: Document,
    ) -> InvocationResult:
        detail = MAX_RETRIES_MESSAGE
        if job.error_message:
            detail = f"{MAX_RETRIES_MESSAGE}: {job.error_message}"
        self._logger.warning(
            "retries_exhausted",
            attempts=job.attempts,
            max_retries=self.policy.max_retries,
        )
        return await self._fail_permanent(
            job,
            document,
            detail,
            document_message=detail,
        )

    async def _update_document(
        self,
        document_id: str,
        status: DocumentStatus,
        **fields: Any,  # noqa: ANN401
    ) -> None:
        """Best-effort document bookkeeping; the job row is authoritative."""
        try:
            updated = await self._documents.update_status(
                document_id,
                status,
                **fields,
            )
        except Exception as exc:
            self._logger.exception(
                "document_update_failed",
                status=status.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        if not updated:
            self._logger.warning("document_update_skipped", status=status.value)
