"""OCR job queue: retry policy, processor and submission.

Example:
    ```python
    from ocr_queue_engine.queue import QueueProcessor

    processor = QueueProcessor(
        jobs=jobs,
        documents=documents,
        ledger=ledger,
        storage=storage,
        extractor=extractor,
    )
    result = await processor.process_next()
    ```
"""

from __future__ import annotations

from ocr_queue_engine.queue.models import InvocationOutcome, InvocationResult
from ocr_queue_engine.queue.processor import (
    MAX_RETRIES_MESSAGE,
    NO_WORK_MESSAGE,
    QueueProcessor,
)
from ocr_queue_engine.queue.retry import (
    DEFAULT_MAX_RETRIES,
    Exhausted,
    Retry,
    RetryDecision,
    RetryPolicy,
)
from ocr_queue_engine.queue.submission import (
    INSUFFICIENT_CREDITS_MESSAGE,
    submit_document,
)


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "INSUFFICIENT_CREDITS_MESSAGE",
    "MAX_RETRIES_MESSAGE",
    "NO_WORK_MESSAGE",
    "Exhausted",
    "InvocationOutcome",
    "InvocationResult",
    "QueueProcessor",
    "Retry",
    "RetryDecision",
    "RetryPolicy",
    "submit_document",
]
