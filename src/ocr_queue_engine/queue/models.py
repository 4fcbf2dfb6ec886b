"""Invocation results returned by the queue processor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


__all__ = [
    "InvocationOutcome",
    "InvocationResult",
]


class InvocationOutcome(StrEnum):
    """What a single processor invocation did.

    Attributes:
        NO_WORK: No eligible job was pending.
        COMPLETED: The claimed job's text was extracted and stored.
        RETRY_SCHEDULED: The attempt failed and the job was re-queued.
        FAILED: The job failed permanently.
    """

    NO_WORK = "no_work"
    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Result of one ``QueueProcessor.process_next`` call.

    Attributes:
        outcome: What happened.
        message: Human-readable summary.
        job_id: The claimed job, if any.
        document_id: The claimed job's document, if any.
        attempt: Attempt number that ran, if one started.
        error: Failure detail for RETRY_SCHEDULED and FAILED.
    """

    outcome: InvocationOutcome
    message: str
    job_id: str | None = None
    document_id: str | None = None
    attempt: int | None = None
    error: str | None = None

    @property
    def claimed(self) -> bool:
        """Return True if the invocation claimed a job."""
        return self.outcome != InvocationOutcome.NO_WORK

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body returned by the trigger endpoint."""
        return {
            "message": self.message,
            "outcome": self.outcome.value,
            "job_id": self.job_id,
            "document_id": self.document_id,
            "attempt": self.attempt,
            "error": self.error,
        }
