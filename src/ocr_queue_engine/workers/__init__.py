"""Background runner for the OCR job queue.

Example:
    ```python
    from ocr_queue_engine.workers import QueueRunner

    async with QueueRunner(processor, workers=4, poll_interval=5) as runner:
        await runner.run_forever(stop_event)
    ```
"""

from __future__ import annotations

from ocr_queue_engine.workers.exceptions import (
    RunnerError,
    RunnerNotRunningError,
)
from ocr_queue_engine.workers.runner import QueueRunner


__all__ = [
    "QueueRunner",
    "RunnerError",
    "RunnerNotRunningError",
]
