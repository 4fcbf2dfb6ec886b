"""Wiring of stores, clients, processor and runner from settings.

The web app, the CLI and the worker all build the same object graph, so
it lives in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

import structlog

from ocr_queue_engine.config.schema import StoreBackend
from ocr_queue_engine.extraction import ExtractionClient
from ocr_queue_engine.queue import QueueProcessor, RetryPolicy
from ocr_queue_engine.storage import StorageClient
from ocr_queue_engine.stores import (
    Database,
    MemoryCreditLedger,
    MemoryDatabase,
    MemoryDocumentStore,
    MemoryJobStore,
    PostgresCreditLedger,
    PostgresDocumentStore,
    PostgresJobStore,
)
from ocr_queue_engine.workers import QueueRunner


if TYPE_CHECKING:
    from ocr_queue_engine.config import Settings
    from ocr_queue_engine.stores import CreditLedger, DocumentStore, JobStore


__all__ = ["Engine", "build_engine"]


logger = structlog.get_logger(__name__)


@dataclass
class Engine:
    """Everything one process needs to submit and process OCR jobs.

    Attributes:
        settings: Settings the engine was built from.
        jobs: Job store.
        documents: Document store.
        ledger: Credit ledger.
        storage: File storage client.
        extractor: Text extraction client.
        processor: Queue processor using the collaborators above.
        runner: Background runner driving ``processor``.
        database: PostgreSQL pool owner (postgres backend only).
        memory: Shared in-memory state (memory backend only).
    """

    settings: Settings
    jobs: JobStore
    documents: DocumentStore
    ledger: CreditLedger
    storage: StorageClient
    extractor: ExtractionClient
    processor: QueueProcessor
    runner: QueueRunner
    database: Database | None = None
    memory: MemoryDatabase | None = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def start(self, *, runner: bool = True) -> None:
        """Connect the database and, unless ``runner`` is False, the runner."""
        if self.database is not None:
            await self.database.connect()
        if runner:
            await self.runner.start()

    async def aclose(self) -> None:
        """Stop the runner, then release HTTP clients and the pool."""
        await self.runner.stop()
        await self.extractor.close()
        await self.storage.close()
        if self.database is not None:
            await self.database.close()

    async def ping(self) -> bool:
        """Return True if the backing store is reachable."""
        if self.database is None:
            return True
        return await self.database.ping()


def build_engine(settings: Settings) -> Engine:
    """Build an engine for the backend selected in ``settings``.

    Nothing is connected yet; call ``Engine.start()`` or use the engine as
    an async context manager.

    Raises:
        StoreError: The postgres backend is selected without a database URL.
    """
    database: Database | None = None
    memory: MemoryDatabase | None = None
    jobs: JobStore
    documents: DocumentStore
    ledger: CreditLedger

    claim_order = settings.database.claim_order
    if settings.database.backend == StoreBackend.MEMORY:
        memory = MemoryDatabase()
        jobs = MemoryJobStore(memory, claim_order=claim_order)
        documents = MemoryDocumentStore(memory)
        ledger = MemoryCreditLedger(memory)
    else:
        database = Database.from_config(settings.database)
        jobs = PostgresJobStore(database, claim_order=claim_order)
        documents = PostgresDocumentStore(database)
        ledger = PostgresCreditLedger(database)

    storage = StorageClient.from_config(settings.storage)
    extractor = ExtractionClient.from_config(settings.extraction)
    processor = QueueProcessor(
        jobs=jobs,
        documents=documents,
        ledger=ledger,
        storage=storage,
        extractor=extractor,
        policy=RetryPolicy.from_config(settings.retry),
        download_timeout=settings.queue.download_timeout,
        extraction_timeout=settings.queue.extraction_timeout,
        retry_content_blocked=settings.retry.retry_content_blocked,
        credit_cost=settings.queue.credit_cost,
    )
    runner = QueueRunner(
        processor,
        workers=settings.queue.workers,
        poll_interval=settings.queue.poll_interval,
    )

    logger.debug(
        "engine_built",
        backend=settings.database.backend.value,
        claim_order=claim_order.value,
    )
    return Engine(
        settings=settings,
        jobs=jobs,
        documents=documents,
        ledger=ledger,
        storage=storage,
        extractor=extractor,
        processor=processor,
        runner=runner,
        database=database,
        memory=memory,
    )
