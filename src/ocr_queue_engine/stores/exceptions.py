"""Exceptions raised by the job, document and credit stores."""

from __future__ import annotations


__all__ = [
    "DocumentNotFoundError",
    "DocumentNotSubmittableError",
    "InsufficientCreditsError",
    "JobNotFoundError",
    "StoreError",
    "UserNotFoundError",
]


class StoreError(Exception):
    """Base exception for persistence failures.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message


class JobNotFoundError(StoreError):
    """Raised when a job with the given ID does not exist."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class DocumentNotFoundError(StoreError):
    """Raised when a document with the given ID does not exist."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class DocumentNotSubmittableError(StoreError):
    """Raised when a document cannot be queued for OCR again.

    Attributes:
        document_id: The rejected document.
        reason: Why it was rejected.
    """

    def __init__(self, document_id: str, reason: str) -> None:
        super().__init__(f"Document {document_id} cannot be submitted: {reason}")
        self.document_id = document_id
        self.reason = reason


class UserNotFoundError(StoreError):
    """Raised when the credit ledger has no account for a user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class InsufficientCreditsError(StoreError):
    """Raised when a user's balance cannot cover a debit.

    Attributes:
        user_id: The user whose balance is too low.
        required: Credits the operation needs.
        balance: The balance observed, when known.
    """

    def __init__(
        self,
        user_id: str,
        *,
        required: int = 1,
        balance: int | None = None,
    ) -> None:
        super().__init__(
            f"Insufficient credits for user {user_id}: "
            f"required={required} balance={balance}",
        )
        self.user_id = user_id
        self.required = required
        self.balance = balance
