"""Abstract interfaces for job, document and credit persistence.

The queue processor only speaks these interfaces; PostgreSQL and
in-memory implementations are interchangeable behind them.

Concurrency contract (enforced by ALL JobStore implementations):
  - ``claim_next_eligible_job`` selects and flips a job to ``processing``
    as one atomic conditional update. Two concurrent callers never receive
    the same job.
  - No other operation needs cross-call locking.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from datetime import datetime

    from ocr_queue_engine.stores.models import (
        Document,
        DocumentStatus,
        JobStatus,
        OcrJob,
    )


__all__ = [
    "CreditLedger",
    "DocumentStore",
    "JobStore",
]


class JobStore(ABC):
    """Persistent table of OCR jobs."""

    @abstractmethod
    async def create(self, document_id: str) -> OcrJob:
        """Insert a new pending job for ``document_id``."""

    @abstractmethod
    async def get(self, job_id: str) -> OcrJob:
        """Return a job by ID, raising ``JobNotFoundError`` when missing."""

    @abstractmethod
    async def list_by_status(
        self,
        status: JobStatus | None = None,
        *,
        limit: int = 100,
    ) -> list[OcrJob]:
        """Return jobs, newest first, optionally filtered by status."""

    @abstractmethod
    async def has_active_job(self, document_id: str) -> bool:
        """Return True if ``document_id`` has a pending or processing job."""

    @abstractmethod
    async def claim_next_eligible_job(self) -> OcrJob | None:
        """Atomically claim the next eligible pending job.

        Returns:
            The claimed job (status already ``processing``), or None when
            no pending job is eligible right now.
        """

    @abstractmethod
    async def mark_processing(self, job_id: str, attempt_number: int) -> None:
        """Record the start of attempt ``attempt_number``."""

    @abstractmethod
    async def mark_completed(self, job_id: str) -> None:
        """Mark a job completed and clear its error message."""

    @abstractmethod
    async def mark_failed_permanent(self, job_id: str, message: str) -> None:
        """Mark a job permanently failed."""

    @abstractmethod
    async def schedule_retry(
        self,
        job_id: str,
        message: str,
        not_before: datetime,
    ) -> None:
        """Return a job to pending, claimable no earlier than ``not_before``."""


class DocumentStore(ABC):
    """Persistent table of documents.

    A document already ``completed`` or ``failed`` is never modified again;
    ``update_status`` reports such rejected writes by returning False.
    """

    @abstractmethod
    async def get(self, document_id: str) -> Document | None:
        """Return a document by ID, or None when missing."""

    @abstractmethod
    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        **fields: Any,  # noqa: ANN401
    ) -> bool:
        """Set ``status`` and any of ``DOCUMENT_UPDATE_FIELDS``.

        Returns:
            True if a row was updated.

        Raises:
            ValueError: If ``fields`` contains an unknown column.
        """


class CreditLedger(ABC):
    """Per-user credit balance."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> int:
        """Return the user's balance, raising ``UserNotFoundError``."""

    @abstractmethod
    async def deduct_credit(self, user_id: str, amount: int = 1) -> int:
        """Debit ``amount`` credits and return the new balance.

        Raises:
            InsufficientCreditsError: The balance cannot cover the debit.
            UserNotFoundError: The user has no account.
        """
