"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

from ocr_queue_engine.config import Settings, clear_settings_cache
from ocr_queue_engine.engine import Engine
from ocr_queue_engine.extraction import ExtractedText
from ocr_queue_engine.queue import QueueProcessor
from ocr_queue_engine.storage import StoredFile
from ocr_queue_engine.stores import (
    Document,
    MemoryCreditLedger,
    MemoryDatabase,
    MemoryDocumentStore,
    MemoryJobStore,
    OcrJob,
)
from ocr_queue_engine.workers import QueueRunner


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

_ENV_VARS = (
    "DATABASE_URL",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "GEMINI_API_KEY",
)


class FakeClock:
    """Controllable replacement for ``datetime.now(UTC)``."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def clean_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[None, None, None]:
    """Isolate tests from the developer's environment and settings cache."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    """Return a clock frozen at ``START``."""
    return FakeClock()


@pytest.fixture
def memory_db() -> MemoryDatabase:
    """Return empty in-memory tables."""
    return MemoryDatabase()


@pytest.fixture
def jobs(memory_db: MemoryDatabase, clock: FakeClock) -> MemoryJobStore:
    """Return a job store on ``memory_db`` driven by ``clock``."""
    return MemoryJobStore(memory_db, clock=clock)


@pytest.fixture
def documents(memory_db: MemoryDatabase) -> MemoryDocumentStore:
    """Return a document store on ``memory_db``."""
    return MemoryDocumentStore(memory_db)


@pytest.fixture
def ledger(memory_db: MemoryDatabase) -> MemoryCreditLedger:
    """Return a credit ledger on ``memory_db``."""
    return MemoryCreditLedger(memory_db)


@pytest.fixture
def document(memory_db: MemoryDatabase) -> Document:
    """Seed a document owned by ``user-1`` who has 5 credits."""
    memory_db.set_balance("user-1", 5)
    return memory_db.add_document(
        Document(
            user_id="user-1",
            original_filename="scan.png",
            file_path="user-1/scan.png",
        ),
    )


@pytest.fixture
def seed_job(
    memory_db: MemoryDatabase,
    clock: FakeClock,
) -> Callable[..., OcrJob]:
    """Return a function that inserts a job row directly."""

    def _seed(document_id: str, **fields: object) -> OcrJob:
        job = OcrJob(document_id=document_id, created_at=clock(), **fields)  # type: ignore[arg-type]
        memory_db.jobs[job.id] = job
        return job

    return _seed


@pytest.fixture
def storage() -> AsyncMock:
    """Mock storage client returning a small PNG."""
    client = AsyncMock()
    client.download = AsyncMock(
        return_value=StoredFile(content=b"\x89PNG-bytes", mime_type="image/png"),
    )
    return client


@pytest.fixture
def extractor() -> AsyncMock:
    """Mock extraction client returning three words."""
    client = AsyncMock()
    client.extract = AsyncMock(
        return_value=ExtractedText.from_text("hello scanned world", 1.25),
    )
    return client


@pytest.fixture
def settings() -> Settings:
    """Settings for the in-memory backend."""
    return Settings(database={"backend": "memory"})


@pytest.fixture
def engine(  # noqa: PLR0913
    settings: Settings,
    memory_db: MemoryDatabase,
    jobs: MemoryJobStore,
    documents: MemoryDocumentStore,
    ledger: MemoryCreditLedger,
    storage: AsyncMock,
    extractor: AsyncMock,
    clock: FakeClock,
) -> Engine:
    """Engine on the in-memory stores with mocked HTTP clients."""
    processor = QueueProcessor(
        jobs=jobs,
        documents=documents,
        ledger=ledger,
        storage=storage,
        extractor=extractor,
        clock=clock,
    )
    return Engine(
        settings=settings,
        jobs=jobs,
        documents=documents,
        ledger=ledger,
        storage=storage,
        extractor=extractor,
        processor=processor,
        runner=QueueRunner(processor, workers=1, poll_interval=0.01),
        memory=memory_db,
    )
