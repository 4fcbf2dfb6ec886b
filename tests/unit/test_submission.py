"""Unit tests for document submission."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from ocr_queue_engine.queue import (
    InvocationOutcome,
    QueueProcessor,
    submit_document,
)
from ocr_queue_engine.stores import (
    DocumentNotFoundError,
    DocumentNotSubmittableError,
    DocumentStatus,
    InsufficientCreditsError,
    JobStatus,
    UserNotFoundError,
)


if TYPE_CHECKING:
    from unittest.mock import AsyncMock

    from ocr_queue_engine.stores import (
        Document,
        MemoryCreditLedger,
        MemoryDatabase,
        MemoryDocumentStore,
        MemoryJobStore,
    )
    from tests.conftest import FakeClock


class TestSubmitDocument:
    """Tests for submit_document()."""

    async def test_creates_pending_job(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        document: Document,
    ) -> None:
        """A funded submission creates a pending job and debits nothing."""
        job = await submit_document(
            document.id,
            jobs=jobs,
            documents=documents,
            ledger=ledger,
        )

        assert job.document_id == document.id
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert await ledger.get_balance("user-1") == 5

    async def test_missing_document(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
    ) -> None:
        """Unknown documents raise DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            await submit_document(
                "missing",
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )
        assert await jobs.list_by_status() == []

    async def test_insufficient_credits(  # noqa: PLR0913
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        memory_db: MemoryDatabase,
        document: Document,
    ) -> None:
        """An empty balance fails the document and creates no job."""
        memory_db.set_balance("user-1", 0)

        with pytest.raises(InsufficientCreditsError):
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )

        stored = await documents.get(document.id)
        assert stored is not None
        assert stored.status == DocumentStatus.FAILED
        assert stored.error_message == "Insufficient credits"
        assert await jobs.list_by_status() == []

    async def test_credit_cost_gates_submission(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        document: Document,
    ) -> None:
        """The balance must cover the configured cost."""
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
                credit_cost=6,
            )
        assert exc_info.value.required == 6

    async def test_owner_without_account(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        memory_db: MemoryDatabase,
        document: Document,
    ) -> None:
        """Owners missing from the ledger raise UserNotFoundError."""
        del memory_db.balances["user-1"]

        with pytest.raises(UserNotFoundError):
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )

    @pytest.mark.parametrize(
        "status",
        [DocumentStatus.COMPLETED, DocumentStatus.FAILED],
    )
    async def test_finished_document_is_rejected(  # noqa: PLR0913
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        memory_db: MemoryDatabase,
        document: Document,
        status: DocumentStatus,
    ) -> None:
        """Completed and failed documents cannot be queued again."""
        memory_db.documents[document.id].status = status

        with pytest.raises(DocumentNotSubmittableError) as exc_info:
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )

        assert exc_info.value.document_id == document.id
        assert exc_info.value.reason == f"document is already {status.value}"
        assert await jobs.list_by_status() == []

    async def test_queued_document_is_rejected(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        document: Document,
    ) -> None:
        """A document with a pending job is not queued twice."""
        first = await submit_document(
            document.id,
            jobs=jobs,
            documents=documents,
            ledger=ledger,
        )

        with pytest.raises(DocumentNotSubmittableError, match="already queued"):
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )

        assert [job.id for job in await jobs.list_by_status()] == [first.id]

    async def test_failed_job_does_not_block(
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        document: Document,
    ) -> None:
        """Only pending and processing jobs count as queued."""
        stale = await jobs.create(document.id)
        await jobs.mark_failed_permanent(stale.id, "boom")

        job = await submit_document(
            document.id,
            jobs=jobs,
            documents=documents,
            ledger=ledger,
        )

        assert job.id != stale.id
        assert job.status == JobStatus.PENDING

    async def test_processed_document_is_charged_once(  # noqa: PLR0913
        self,
        jobs: MemoryJobStore,
        documents: MemoryDocumentStore,
        ledger: MemoryCreditLedger,
        document: Document,
        storage: AsyncMock,
        extractor: AsyncMock,
        clock: FakeClock,
    ) -> None:
        """Resubmitting a completed document neither queues nor charges."""
        processor = QueueProcessor(
            jobs=jobs,
            documents=documents,
            ledger=ledger,
            storage=storage,
            extractor=extractor,
            clock=clock,
        )
        await submit_document(
            document.id,
            jobs=jobs,
            documents=documents,
            ledger=ledger,
        )
        result = await processor.process_next()
        assert result.outcome == InvocationOutcome.COMPLETED
        assert await ledger.get_balance("user-1") == 4

        with pytest.raises(DocumentNotSubmittableError):
            await submit_document(
                document.id,
                jobs=jobs,
                documents=documents,
                ledger=ledger,
            )

        assert (await processor.process_next()).outcome == InvocationOutcome.NO_WORK
        assert extractor.extract.await_count == 1
        assert await ledger.get_balance("user-1") == 4
