"""PostgreSQL store implementations on an asyncpg connection pool.

Tables (managed by the hosting database, see ``SCHEMA_SQL`` for the
shape this module expects)::

    ocr_jobs(id, document_id, status, attempts, last_attempted_at,
             error_message, created_at)
    documents(id, user_id, original_filename, status, ocr_text, word_count,
              processing_time, error_message, file_path, created_at)
    users(id, credit_balance, ...)
"""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

import asyncpg

from ocr_queue_engine.config.schema import ClaimOrder
from ocr_queue_engine.observability import get_logger
from ocr_queue_engine.stores.base import CreditLedger, DocumentStore, JobStore
from ocr_queue_engine.stores.exceptions import (
    InsufficientCreditsError,
    JobNotFoundError,
    StoreError,
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
    from collections.abc import Callable, Iterator, Mapping

    from ocr_queue_engine.config.schema import DatabaseConfig


__all__ = [
    "SCHEMA_SQL",
    "Database",
    "PostgresCreditLedger",
    "PostgresDocumentStore",
    "PostgresJobStore",
]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id uuid PRIMARY KEY,
    email text,
    credit_balance integer NOT NULL DEFAULT 0,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS documents (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL REFERENCES users (id),
    original_filename text NOT NULL,
    status text NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    ocr_text text,
    word_count integer,
    processing_time double precision,
    error_message text,
    file_path text,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS ocr_jobs (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    document_id uuid NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
    status text NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    attempts integer NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    last_attempted_at timestamptz,
    error_message text,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS ocr_jobs_pending_idx
    ON ocr_jobs (last_attempted_at NULLS FIRST, created_at)
    WHERE status = 'pending';
"""

_JOB_COLUMNS = (
    "id, document_id, status, attempts, last_attempted_at, error_message, created_at"
)
_DOCUMENT_COLUMNS = (
    "id, user_id, original_filename, status, ocr_text, word_count, "
    "processing_time, error_message, file_path, created_at"
)

_CLAIM_ORDER_SQL = {
    ClaimOrder.LAST_ATTEMPTED: "last_attempted_at ASC NULLS FIRST, created_at ASC",
    ClaimOrder.CREATED: "created_at ASC",
}

# Select and flip in one statement; SKIP LOCKED lets concurrent claimers
# move on to the next row instead of waiting, and the outer status check
# guarantees the flip only happens from pending.
_CLAIM_SQL = """
UPDATE ocr_jobs SET status = 'processing'
WHERE id = (
    SELECT id FROM ocr_jobs
    WHERE status = 'pending'
      AND (last_attempted_at IS NULL OR last_attempted_at <= $1)
    ORDER BY {order}
    LIMIT 1
    FOR UPDATE SKIP LOCKED
)
AND status = 'pending'
RETURNING {columns}
"""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _str_or_none(value: object) -> str | None:
    return str(value) if value is not None else None


def _row_to_job(row: Mapping[str, Any]) -> OcrJob:
    return OcrJob(
        id=str(row["id"]),
        document_id=str(row["document_id"]),
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        last_attempted_at=row["last_attempted_at"],
        error_message=row["error_message"],
        created_at=row["created_at"],
    )


def _row_to_document(row: Mapping[str, Any]) -> Document:
    return Document(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        original_filename=row["original_filename"],
        file_path=row["file_path"],
        status=DocumentStatus(row["status"]),
        ocr_text=row["ocr_text"],
        word_count=row["word_count"],
        processing_time=row["processing_time"],
        error_message=row["error_message"],
        created_at=row["created_at"],
    )


def _rows_affected(status: str) -> int:
    """Parse asyncpg's command tag, e.g. ``"UPDATE 1"`` -> 1."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


@contextlib.contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver and connection failures as StoreError."""
    try:
        yield
    except StoreError:
        raise
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        msg = f"Database error during {operation}: {exc}"
        raise StoreError(msg, cause=exc) from exc


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------


class Database:
    """Owns the asyncpg pool shared by the PostgreSQL stores.

    The pool is created by ``connect()`` and released by ``close()``; the
    stores borrow it per statement.

    Example:
        ```python
        async with Database("postgresql://localhost/ocr") as db:
            jobs = PostgresJobStore(db)
            job = await jobs.claim_next_eligible_job()
        ```
    """

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 5,
        command_timeout: float = 30.0,
    ) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> Self:
        """Create a Database from the ``database`` settings section."""
        if not config.url:
            msg = "database.url (or DATABASE_URL) is required for the postgres backend"
            raise StoreError(msg)
        return cls(
            config.url,
            min_size=config.min_pool_size,
            max_size=config.max_pool_size,
            command_timeout=config.command_timeout,
        )

    @property
    def is_connected(self) -> bool:
        """Return True while the pool is open."""
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        """Return the open pool."""
        if self._pool is None:
            msg = "Database is not connected"
            raise StoreError(msg)
        return self._pool

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the connection pool (no-op if already open)."""
        if self._pool is not None:
            return
        with _translate_errors("connect"):
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
            )
        self._logger.info(
            "database_connected",
            min_size=self._min_size,
            max_size=self._max_size,
        )

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        self._logger.info("database_closed")

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            await self.pool.fetchval("SELECT 1")
        except (StoreError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False
        return True

    async def create_schema(self) -> None:
        """Create the tables this service expects, if they do not exist."""
        with _translate_errors("create_schema"):
            await self.pool.execute(SCHEMA_SQL)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class PostgresJobStore(JobStore):
    """JobStore on the ``ocr_jobs`` table."""

    def __init__(
        self,
        database: Database,
        *,
        claim_order: ClaimOrder = ClaimOrder.LAST_ATTEMPTED,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = database
        self._clock = clock
        self._claim_sql = _CLAIM_SQL.format(
            order=_CLAIM_ORDER_SQL[claim_order],
            columns=_JOB_COLUMNS,
        )

    async def _update_one(self, job_id: str, sql: str, *args: object) -> None:
        with _translate_errors("job update"):
            status = await self._db.pool.execute(sql, job_id, *args)
        if _rows_affected(status) == 0:
            raise JobNotFoundError(job_id)

    async def create(self, document_id: str) -> OcrJob:
        with _translate_errors("job create"):
            row = await self._db.pool.fetchrow(
                f"INSERT INTO ocr_jobs (document_id, status, attempts, created_at) "  # noqa: S608
                f"VALUES ($1, 'pending', 0, $2) RETURNING {_JOB_COLUMNS}",
                document_id,
                self._clock(),
            )
        return _row_to_job(row)

    async def get(self, job_id: str) -> OcrJob:
        with _translate_errors("job get"):
            row = await self._db.pool.fetchrow(
                f"SELECT {_JOB_COLUMNS} FROM ocr_jobs WHERE id = $1",  # noqa: S608
                job_id,
            )
        if row is None:
            raise JobNotFoundError(job_id)
        return _row_to_job(row)

    async def list_by_status(
        self,
        status: JobStatus | None = None,
        *,
        limit: int = 100,
    ) -> list[OcrJob]:
        with _translate_errors("job list"):
            if status is None:
                rows = await self._db.pool.fetch(
                    f"SELECT {_JOB_COLUMNS} FROM ocr_jobs "  # noqa: S608
                    "ORDER BY created_at DESC LIMIT $1",
                    limit,
                )
            else:
                rows = await self._db.pool.fetch(
                    f"SELECT {_JOB_COLUMNS} FROM ocr_jobs WHERE status = $1 "  # noqa: S608
                    "ORDER BY created_at DESC LIMIT $2",
                    status.value,
                    limit,
                )
        return [_row_to_job(row) for row in rows]

    async def has_active_job(self, document_id: str) -> bool:
        with _translate_errors("job lookup"):
            found = await self._db.pool.fetchval(
                "SELECT EXISTS (SELECT 1 FROM ocr_jobs WHERE document_id = $1 "
                "AND status IN ('pending', 'processing'))",
                document_id,
            )
        return bool(found)

    async def claim_next_eligible_job(self) -> OcrJob | None:
        with _translate_errors("job claim"):
            row = await self._db.pool.fetchrow(self._claim_sql, self._clock())
        return _row_to_job(row) if row is not None else None

    async def mark_processing(self, job_id: str, attempt_number: int) -> None:
        await self._update_one(
            job_id,
            "UPDATE ocr_jobs SET status = 'processing', "
            "attempts = GREATEST(attempts, $2), last_attempted_at = $3, "
            "error_message = NULL WHERE id = $1",
            attempt_number,
            self._clock(),
        )

    async def mark_completed(self, job_id: str) -> None:
        await self._update_one(
            job_id,
            "UPDATE ocr_jobs SET status = 'completed', error_message = NULL "
            "WHERE id = $1",
        )

    async def mark_failed_permanent(self, job_id: str, message: str) -> None:
        await self._update_one(
            job_id,
            "UPDATE ocr_jobs SET status = 'failed', error_message = $2 WHERE id = $1",
            message,
        )

    async def schedule_retry(
        self,
        job_id: str,
        message: str,
        not_before: datetime,
    ) -> None:
        await self._update_one(
            job_id,
            "UPDATE ocr_jobs SET status = 'pending', error_message = $2, "
            "last_attempted_at = $3 WHERE id = $1",
            message,
            not_before,
        )


class PostgresDocumentStore(DocumentStore):
    """DocumentStore on the ``documents`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, document_id: str) -> Document | None:
        with _translate_errors("document get"):
            row = await self._db.pool.fetchrow(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = $1",  # noqa: S608
                document_id,
            )
        return _row_to_document(row) if row is not None else None

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        **fields: Any,
    ) -> bool:
        check_update_fields(fields)
        names = sorted(fields)
        assignments = ", ".join(
            ["status = $2"] + [f"{name} = ${i}" for i, name in enumerate(names, 3)],
        )
        # Column names come from DOCUMENT_UPDATE_FIELDS only
        sql = (
            f"UPDATE documents SET {assignments} "  # noqa: S608
            "WHERE id = $1 AND status NOT IN ('completed', 'failed')"
        )
        with _translate_errors("document update"):
            result = await self._db.pool.execute(
                sql,
                document_id,
                DocumentStatus(status).value,
                *(fields[name] for name in names),
            )
        return _rows_affected(result) > 0


class PostgresCreditLedger(CreditLedger):
    """CreditLedger on ``users.credit_balance``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_balance(self, user_id: str) -> int:
        with _translate_errors("credit balance"):
            balance = await self._db.pool.fetchval(
                "SELECT credit_balance FROM users WHERE id = $1",
                user_id,
            )
        if balance is None:
            raise UserNotFoundError(user_id)
        return int(balance)

    async def deduct_credit(self, user_id: str, amount: int = 1) -> int:
        with _translate_errors("credit deduction"):
            balance = await self._db.pool.fetchval(
                "UPDATE users SET credit_balance = credit_balance - $2 "
                "WHERE id = $1 AND credit_balance >= $2 RETURNING credit_balance",
                user_id,
                amount,
            )
        if balance is not None:
            return int(balance)

        current = await self.get_balance(user_id)
        raise InsufficientCreditsError(user_id, required=amount, balance=current)
