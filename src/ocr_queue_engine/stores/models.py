"""Persistent records for OCR jobs and documents."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


__all__ = [
    "DOCUMENT_UPDATE_FIELDS",
    "Document",
    "DocumentStatus",
    "JobStatus",
    "OcrJob",
    "check_update_fields",
]


# Columns update_status() may write besides ``status``
DOCUMENT_UPDATE_FIELDS = frozenset(
    {"ocr_text", "word_count", "processing_time", "error_message"},
)


def check_update_fields(fields: dict[str, Any]) -> None:
    """Raise ValueError if ``fields`` names a column update_status() can't write."""
    unknown = set(fields) - DOCUMENT_UPDATE_FIELDS
    if unknown:
        msg = f"Unknown document fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class JobStatus(StrEnum):
    """Status of an OCR job.

    Attributes:
        PENDING: Waiting to be claimed (fresh or awaiting retry).
        PROCESSING: Claimed by an invocation.
        COMPLETED: Text extracted and stored.
        FAILED: Permanently failed.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True for COMPLETED and FAILED."""
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


class DocumentStatus(StrEnum):
    """User-visible processing status of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True for COMPLETED and FAILED."""
        return self in {DocumentStatus.COMPLETED, DocumentStatus.FAILED}


@dataclass
class OcrJob:
    """One OCR processing lineage for a single document.

    Attributes:
        id: Unique job identifier.
        document_id: The document this job processes.
        status: Current job status.
        attempts: Number of processing attempts started so far.
        last_attempted_at: When the last attempt started, or the earliest
            time the job may be claimed again after a scheduled retry.
        error_message: Detail of the most recent failure.
        created_at: When the job was created.
    """

    document_id: str
    id: str = field(default_factory=_new_id)
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    last_attempted_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        """Return True if the job can no longer change."""
        return self.status.is_terminal

    def is_eligible(self, now: datetime) -> bool:
        """Return True if the job may be claimed at ``now``."""
        return self.status == JobStatus.PENDING and (
            self.last_attempted_at is None or self.last_attempted_at <= now
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert job to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_attempted_at": _isoformat(self.last_attempted_at),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Document:
    """A user-submitted document and its extraction results.

    Attributes:
        id: Unique document identifier.
        user_id: Owner, debited one credit on successful extraction.
        original_filename: Name of the uploaded file.
        file_path: Storage reference of the uploaded file.
        status: Processing status shown to the user.
        ocr_text: Extracted text once completed.
        word_count: Number of words in ``ocr_text``.
        processing_time: Extraction duration in seconds.
        error_message: Latest failure or retry notice.
        created_at: Submission time.
    """

    user_id: str
    original_filename: str
    file_path: str | None
    id: str = field(default_factory=_new_id)
    status: DocumentStatus = DocumentStatus.PENDING
    ocr_text: str | None = None
    word_count: int | None = None
    processing_time: float | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert document to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "original_filename": self.original_filename,
            "file_path": self.file_path,
            "status": self.status.value,
            "ocr_text": self.ocr_text,
            "word_count": self.word_count,
            "processing_time": self.processing_time,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }
