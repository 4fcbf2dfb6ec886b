"""In-memory store implementations for local development and tests.

All three stores share one ``MemoryDatabase`` so a job, its document and
the owner's balance live side by side, like tables in one database. An
asyncio lock makes the claim's select-and-flip atomic across concurrent
invocations within the process.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ocr_queue_engine.config.schema import ClaimOrder
from ocr_queue_engine.stores.base import CreditLedger, DocumentStore, JobStore
from ocr_queue_engine.stores.exceptions import (
    InsufficientCreditsError,
    JobNotFoundError,
    UserNotFoundError,
)
from ocr_queue_engine.stores.models import (
    Document,
    DocumentStatus,
    JobStatus,
    OcrJob,
    check_update_fields,
)


if TYPE_CHECKING:
    from collections.abc import Callable


__all__ = [
    "MemoryCreditLedger",
    "MemoryDatabase",
    "MemoryDocumentStore",
    "MemoryJobStore",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MemoryDatabase:
    """Shared state for the in-memory stores.

    Attributes:
        jobs: Jobs keyed by ID.
        documents: Documents keyed by ID.
        balances: Credit balances keyed by user ID.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, OcrJob] = {}
        self.documents: dict[str, Document] = {}
        self.balances: dict[str, int] = {}
        self.lock = asyncio.Lock()

    def add_document(self, document: Document) -> Document:
        """Seed a document (uploads are outside this service)."""
        self.documents[document.id] = document
        return document

    def set_balance(self, user_id: str, balance: int) -> None:
        """Seed or overwrite a user's credit balance."""
        self.balances[user_id] = balance


class MemoryJobStore(JobStore):
    """JobStore backed by ``MemoryDatabase.jobs``."""

    def __init__(
        self,
        database: MemoryDatabase,
        *,
        claim_order: ClaimOrder = ClaimOrder.LAST_ATTEMPTED,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = database
        self._claim_order = claim_order
        self._clock = clock

    def _require(self, job_id: str) -> OcrJob:
        job = self._db.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _sort_key(self, job: OcrJob) -> tuple[Any, ...]:
        if self._claim_order == ClaimOrder.CREATED:
            return (job.created_at,)
        # NULLS FIRST, then oldest marker, then oldest job
        return (
            job.last_attempted_at is not None,
            job.last_attempted_at or job.created_at,
            job.created_at,
        )

    async def create(self, document_id: str) -> OcrJob:
        job = OcrJob(document_id=document_id, created_at=self._clock())
        async with self._db.lock:
            self._db.jobs[job.id] = job
        return replace(job)

    async def get(self, job_id: str) -> OcrJob:
        async with self._db.lock:
            return replace(self._require(job_id))

    async def list_by_status(
        self,
        status: JobStatus | None = None,
        *,
        limit: int = 100,
    ) -> list[OcrJob]:
        async with self._db.lock:
            jobs = [
                replace(job)
                for job in self._db.jobs.values()
                if status is None or job.status == status
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def has_active_job(self, document_id: str) -> bool:
        async with self._db.lock:
            return any(
                job.document_id == document_id and not job.is_terminal
                for job in self._db.jobs.values()
            )

    async def claim_next_eligible_job(self) -> OcrJob | None:
        now = self._clock()
        async with self._db.lock:
            eligible = [job for job in self._db.jobs.values() if job.is_eligible(now)]
            if not eligible:
                return None
            job = min(eligible, key=self._sort_key)
            job.status = JobStatus.PROCESSING
            return replace(job)

    async def mark_processing(self, job_id: str, attempt_number: int) -> None:
        async with self._db.lock:
            job = self._require(job_id)
            job.status = JobStatus.PROCESSING
            job.attempts = max(job.attempts, attempt_number)
            job.last_attempted_at = self._clock()
            job.error_message = None

    async def mark_completed(self, job_id: str) -> None:
        async with self._db.lock:
            job = self._require(job_id)
            job.status = JobStatus.COMPLETED
            job.error_message = None

    async def mark_failed_permanent(self, job_id: str, message: str) -> None:
        async with self._db.lock:
            job = self._require(job_id)
            job.status = JobStatus.FAILED
            job.error_message = message

    async def schedule_retry(
        self,
        job_id: str,
        message: str,
        not_before: datetime,
    ) -> None:
        async with self._db.lock:
            job = self._require(job_id)
            job.status = JobStatus.PENDING
            job.error_message = message
            job.last_attempted_at = not_before


class MemoryDocumentStore(DocumentStore):
    """DocumentStore backed by ``MemoryDatabase.documents``."""

    def __init__(self, database: MemoryDatabase) -> None:
        self._db = database

    async def get(self, document_id: str) -> Document | None:
        async with self._db.lock:
            document = self._db.documents.get(document_id)
            return replace(document) if document is not None else None

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        **fields: Any,
    ) -> bool:
        check_update_fields(fields)
        async with self._db.lock:
            document = self._db.documents.get(document_id)
            if document is None or document.status.is_terminal:
                return False
            document.status = DocumentStatus(status)
            for name, value in fields.items():
                setattr(document, name, value)
            return True


class MemoryCreditLedger(CreditLedger):
    """CreditLedger backed by ``MemoryDatabase.balances``."""

    def __init__(self, database: MemoryDatabase) -> None:
        self._db = database

    async def get_balance(self, user_id: str) -> int:
        async with self._db.lock:
            if user_id not in self._db.balances:
                raise UserNotFoundError(user_id)
            return self._db.balances[user_id]

    async def deduct_credit(self, user_id: str, amount: int = 1) -> int:
        async with self._db.lock:
            if user_id not in self._db.balances:
                raise UserNotFoundError(user_id)
            balance = self._db.balances[user_id]
            if balance < amount:
                raise InsufficientCreditsError(
                    user_id,
                    required=amount,
                    balance=balance,
                )
            self._db.balances[user_id] = balance - amount
            return balance - amount
