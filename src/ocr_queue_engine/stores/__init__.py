"""Job, document and credit persistence.

Example:
    ```python
    from ocr_queue_engine.stores import (
        Database,
        PostgresDocumentStore,
        PostgresJobStore,
    )

    async with Database(dsn) as db:
        jobs = PostgresJobStore(db)
        documents = PostgresDocumentStore(db)
        job = await jobs.claim_next_eligible_job()
    ```
"""

from __future__ import annotations

from ocr_queue_engine.stores.base import CreditLedger, DocumentStore, JobStore
from ocr_queue_engine.stores.exceptions import (
    DocumentNotFoundError,
    DocumentNotSubmittableError,
    InsufficientCreditsError,
    JobNotFoundError,
    StoreError,
    UserNotFoundError,
)
from ocr_queue_engine.stores.memory import (
    MemoryCreditLedger,
    MemoryDatabase,
    MemoryDocumentStore,
    MemoryJobStore,
)
from ocr_queue_engine.stores.models import (
    Document,
    DocumentStatus,
    JobStatus,
    OcrJob,
)
from ocr_queue_engine.stores.postgres import (
    Database,
    PostgresCreditLedger,
    PostgresDocumentStore,
    PostgresJobStore,
)


__all__ = [
    "CreditLedger",
    "Database",
    "Document",
    "DocumentNotFoundError",
    "DocumentNotSubmittableError",
    "DocumentStatus",
    "DocumentStore",
    "InsufficientCreditsError",
    "JobNotFoundError",
    "JobStatus",
    "JobStore",
    "MemoryCreditLedger",
    "MemoryDatabase",
    "MemoryDocumentStore",
    "MemoryJobStore",
    "OcrJob",
    "PostgresCreditLedger",
    "PostgresDocumentStore",
    "PostgresJobStore",
    "StoreError",
    "UserNotFoundError",
]
