"""Unit tests for the in-memory stores."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from ocr_queue_engine.config import ClaimOrder
from ocr_queue_engine.stores import (
    Document,
    DocumentStatus,
    InsufficientCreditsError,
    JobNotFoundError,
    JobStatus,
    MemoryJobStore,
    UserNotFoundError,
)


if TYPE_CHECKING:
    from ocr_queue_engine.stores import (
        MemoryCreditLedger,
        MemoryDatabase,
        MemoryDocumentStore,
    )
    from tests.conftest import FakeClock


# ---------------------------------------------------------------------------
# MemoryJobStore
# ---------------------------------------------------------------------------


class TestMemoryJobStoreClaim:
    """Tests for claim_next_eligible_job()."""

    async def test_empty_queue_returns_none(self, jobs: MemoryJobStore) -> None:
        """No jobs, nothing to claim."""
        assert await jobs.claim_next_eligible_job() is None

    async def test_claim_flips_to_processing(self, jobs: MemoryJobStore) -> None:
        """A claimed job is no longer pending."""
        created = await jobs.create("doc-1")
        claimed = await jobs.claim_next_eligible_job()

        assert claimed is not None
        assert claimed.id == created.id
        assert claimed.status == JobStatus.PROCESSING
        assert (await jobs.get(created.id)).status == JobStatus.PROCESSING
        assert await jobs.claim_next_eligible_job() is None

    async def test_never_attempted_first(
        self,
        jobs: MemoryJobStore,
        clock: FakeClock,
    ) -> None:
        """Jobs without a last attempt are claimed before retried ones."""
        retried = await jobs.create("doc-1")
        await jobs.schedule_retry(retried.id, "boom", clock() - timedelta(seconds=1))
        fresh = await jobs.create("doc-2")

        first = await jobs.claim_next_eligible_job()
        assert first is not None
        assert first.id == fresh.id

    async def test_future_retry_not_eligible(
        self,
        jobs: MemoryJobStore,
        clock: FakeClock,
    ) -> None:
        """A job is not claimable before its backoff elapses."""
        job = await jobs.create("doc-1")
        await jobs.schedule_retry(job.id, "boom", clock() + timedelta(seconds=4))

        assert await jobs.claim_next_eligible_job() is None
        clock.advance(4)
        claimed = await jobs.claim_next_eligible_job()
        assert claimed is not None
        assert claimed.id == job.id

    async def test_created_order(
        self,
        memory_db: MemoryDatabase,
        clock: FakeClock,
    ) -> None:
        """CREATED order picks the oldest submission."""
        store = MemoryJobStore(
            memory_db,
            claim_order=ClaimOrder.CREATED,
            clock=clock,
        )
        older = await store.create("doc-1")
        await store.schedule_retry(older.id, "boom", clock())
        clock.advance(1)
        await store.create("doc-2")

        claimed = await store.claim_next_eligible_job()
        assert claimed is not None
        assert claimed.id == older.id

    async def test_concurrent_claims_never_share_a_job(
        self,
        jobs: MemoryJobStore,
    ) -> None:
        """Concurrent claimers each get a distinct job or None."""
        for index in range(3):
            await jobs.create(f"doc-{index}")

        claims = await asyncio.gather(
            *(jobs.claim_next_eligible_job() for _ in range(8)),
        )
        claimed_ids = [job.id for job in claims if job is not None]

        assert len(claimed_ids) == 3
        assert len(set(claimed_ids)) == 3

    async def test_returns_copies(self, jobs: MemoryJobStore) -> None:
        """Mutating a returned job does not touch the table."""
        job = await jobs.create("doc-1")
        job.status = JobStatus.FAILED
        assert (await jobs.get(job.id)).status == JobStatus.PENDING


class TestMemoryJobStoreUpdates:
    """Tests for the job state transitions."""

    async def test_mark_processing_records_attempt(
        self,
        jobs: MemoryJobStore,
        clock: FakeClock,
    ) -> None:
        """Attempt count and start time are recorded."""
        job = await jobs.create("doc-1")
        await jobs.mark_processing(job.id, 1)

        stored = await jobs.get(job.id)
        assert stored.attempts == 1
        assert stored.last_attempted_at == clock()
        assert stored.status == JobStatus.PROCESSING

    async def test_attempts_never_decrease(self, jobs: MemoryJobStore) -> None:
        """A stale attempt number does not lower the count."""
        job = await jobs.create("doc-1")
        await jobs.mark_processing(job.id, 2)
        await jobs.mark_processing(job.id, 1)
        assert (await jobs.get(job.id)).attempts == 2

    async def test_schedule_retry(
        self,
        jobs: MemoryJobStore,
        clock: FakeClock,
    ) -> None:
        """A retry returns the job to pending with a future marker."""
        job = await jobs.create("doc-1")
        not_before = clock() + timedelta(seconds=2)
        await jobs.schedule_retry(job.id, "Failed to download file: 503", not_before)

        stored = await jobs.get(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.error_message == "Failed to download file: 503"
        assert stored.last_attempted_at == not_before

    async def test_complete_clears_error(self, jobs: MemoryJobStore) -> None:
        """Completion clears a previous failure message."""
        job = await jobs.create("doc-1")
        await jobs.mark_failed_permanent(job.id, "boom")
        await jobs.mark_completed(job.id)

        stored = await jobs.get(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.error_message is None

    async def test_unknown_job_raises(self, jobs: MemoryJobStore) -> None:
        """Updates on a missing job raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            await jobs.mark_completed("missing")
        with pytest.raises(JobNotFoundError):
            await jobs.get("missing")

    async def test_list_by_status(
        self,
        jobs: MemoryJobStore,
        clock: FakeClock,
    ) -> None:
        """Listing filters by status and returns newest first."""
        first = await jobs.create("doc-1")
        clock.advance(1)
        second = await jobs.create("doc-2")
        await jobs.mark_failed_permanent(first.id, "boom")

        assert [j.id for j in await jobs.list_by_status()] == [second.id, first.id]
        failed = await jobs.list_by_status(JobStatus.FAILED)
        assert [j.id for j in failed] == [first.id]
        assert len(await jobs.list_by_status(limit=1)) == 1

    async def test_has_active_job(self, jobs: MemoryJobStore) -> None:
        """Pending and processing jobs are active; finished ones are not."""
        assert not await jobs.has_active_job("doc-1")

        job = await jobs.create("doc-1")
        assert await jobs.has_active_job("doc-1")
        assert not await jobs.has_active_job("doc-2")

        await jobs.mark_processing(job.id, 1)
        assert await jobs.has_active_job("doc-1")

        await jobs.mark_completed(job.id)
        assert not await jobs.has_active_job("doc-1")


# ---------------------------------------------------------------------------
# MemoryDocumentStore
# ---------------------------------------------------------------------------


class TestMemoryDocumentStore:
    """Tests for MemoryDocumentStore."""

    async def test_get_missing_returns_none(
        self,
        documents: MemoryDocumentStore,
    ) -> None:
        """Unknown documents are None, not an error."""
        assert await documents.get("missing") is None

    async def test_update_fields(
        self,
        documents: MemoryDocumentStore,
        document: Document,
    ) -> None:
        """Status and result fields are written together."""
        updated = await documents.update_status(
            document.id,
            DocumentStatus.COMPLETED,
            ocr_text="hello world",
            word_count=2,
            processing_time=1.5,
            error_message=None,
        )

        assert updated is True
        stored = await documents.get(document.id)
        assert stored is not None
        assert stored.status == DocumentStatus.COMPLETED
        assert stored.ocr_text == "hello world"
        assert stored.word_count == 2

    async def test_terminal_document_is_frozen(
        self,
        documents: MemoryDocumentStore,
        document: Document,
    ) -> None:
        """Completed documents ignore later updates."""
        await documents.update_status(document.id, DocumentStatus.COMPLETED)

        updated = await documents.update_status(
            document.id,
            DocumentStatus.FAILED,
            error_message="late failure",
        )

        assert updated is False
        stored = await documents.get(document.id)
        assert stored is not None
        assert stored.status == DocumentStatus.COMPLETED
        assert stored.error_message is None

    async def test_unknown_field_rejected(
        self,
        documents: MemoryDocumentStore,
        document: Document,
    ) -> None:
        """Only whitelisted columns may be written."""
        with pytest.raises(ValueError, match="user_id"):
            await documents.update_status(
                document.id,
                DocumentStatus.PROCESSING,
                user_id="someone-else",
            )


# ---------------------------------------------------------------------------
# MemoryCreditLedger
# ---------------------------------------------------------------------------


class TestMemoryCreditLedger:
    """Tests for MemoryCreditLedger."""

    async def test_deduct(
        self,
        ledger: MemoryCreditLedger,
        memory_db: MemoryDatabase,
    ) -> None:
        """Deduction returns the new balance."""
        memory_db.set_balance("user-1", 2)
        assert await ledger.deduct_credit("user-1") == 1
        assert await ledger.get_balance("user-1") == 1

    async def test_insufficient(
        self,
        ledger: MemoryCreditLedger,
        memory_db: MemoryDatabase,
    ) -> None:
        """A balance never goes negative."""
        memory_db.set_balance("user-1", 0)
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.deduct_credit("user-1")
        assert exc_info.value.balance == 0
        assert await ledger.get_balance("user-1") == 0

    async def test_unknown_user(self, ledger: MemoryCreditLedger) -> None:
        """Unknown users raise UserNotFoundError."""
        with pytest.raises(UserNotFoundError):
            await ledger.get_balance("nobody")
