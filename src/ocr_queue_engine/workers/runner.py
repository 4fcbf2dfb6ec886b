"""Background execution of queue processor invocations."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Self

import aiojobs
import structlog

from ocr_queue_engine.observability import (
    clear_invocation_context,
    set_invocation_id,
)
from ocr_queue_engine.workers.exceptions import RunnerNotRunningError


if TYPE_CHECKING:
    from ocr_queue_engine.queue.models import InvocationResult
    from ocr_queue_engine.queue.processor import QueueProcessor


__all__ = ["QueueRunner"]


class QueueRunner:
    """Run ``QueueProcessor.process_next`` in the background.

    Wraps an ``aiojobs.Scheduler`` for two uses:

    - ``kick()`` spawns one fire-and-forget invocation, e.g. right after a
      document is submitted.
    - ``run_forever()`` drives ``workers`` polling loops that invoke the
      processor back to back while there is work and sleep
      ``poll_interval`` seconds when there is none.

    The scheduler only bounds local concurrency. Two invocations never
    process the same job because the job store's claim is atomic.

    Example:
        ```python
        async with QueueRunner(processor, workers=2) as runner:
            await runner.kick()
        ```

    Attributes:
        workers: Concurrent invocations (and poll loops in worker mode).
        poll_interval: Idle sleep between polls, in seconds.
    """

    DEFAULT_WORKERS = 2
    DEFAULT_POLL_INTERVAL = 10.0
    DEFAULT_PENDING_LIMIT = 100

    def __init__(
        self,
        processor: QueueProcessor,
        *,
        workers: int = DEFAULT_WORKERS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        pending_limit: int = DEFAULT_PENDING_LIMIT,
    ) -> None:
        self._processor = processor
        self.workers = workers
        self.poll_interval = poll_interval
        self._pending_limit = pending_limit
        self._scheduler: aiojobs.Scheduler | None = None
        self._logger = structlog.get_logger(__name__)

    @property
    def is_running(self) -> bool:
        """Return True if the scheduler is accepting work."""
        return self._scheduler is not None and not self._scheduler.closed

    @property
    def active_count(self) -> int:
        """Return the number of invocations currently running."""
        if self._scheduler is None:
            return 0
        return int(self._scheduler.active_count)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Create the scheduler. Calling it twice is a no-op."""
        if self.is_running:
            return
        self._scheduler = aiojobs.Scheduler(
            limit=self.workers,
            pending_limit=self._pending_limit,
            close_timeout=10.0,
        )
        self._logger.info(
            "queue_runner_started",
            workers=self.workers,
            poll_interval=self.poll_interval,
        )

    async def stop(
        self,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> None:
        """Wait for in-flight invocations, then close the scheduler."""
        if self._scheduler is None or self._scheduler.closed:
            return
        self._logger.info("queue_runner_stopping", active_count=self.active_count)
        await self._scheduler.wait_and_close(timeout=timeout)
        self._scheduler = None
        self._logger.info("queue_runner_stopped")

    def _require_scheduler(self) -> aiojobs.Scheduler:
        if self._scheduler is None or self._scheduler.closed:
            raise RunnerNotRunningError
        return self._scheduler

    async def invoke(self) -> InvocationResult | None:
        """Run one invocation with its own invocation ID.

        Returns:
            The invocation result, or None if the invocation raised. The
            error is logged, never propagated.
        """
        set_invocation_id()
        try:
            result = await self._processor.process_next()
        except Exception as exc:
            self._logger.exception(
                "invocation_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        else:
            if result.claimed:
                self._logger.info(
                    "invocation_finished",
                    outcome=result.outcome.value,
                    job_id=result.job_id,
                )
            return result
        finally:
            clear_invocation_context()

    async def kick(self) -> aiojobs.Job[Any]:
        """Spawn one background invocation.

        Raises:
            RunnerNotRunningError: The runner has not been started.
        """
        scheduler = self._require_scheduler()
        job = await scheduler.spawn(self.invoke())
        self._logger.debug("invocation_spawned", pending=scheduler.pending_count)
        return job

    async def _poll_loop(self, stop: asyncio.Event, index: int) -> None:
        log = self._logger.bind(worker=index)
        log.debug("poll_loop_started")
        while not stop.is_set():
            result = await self.invoke()
            if result is not None and result.claimed:
                continue
            with suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
        log.debug("poll_loop_stopped")

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll the queue with ``workers`` loops until ``stop_event`` is set.

        In-flight invocations finish before this returns.

        Raises:
            RunnerNotRunningError: The runner has not been started.
        """
        scheduler = self._require_scheduler()
        stop = stop_event if stop_event is not None else asyncio.Event()
        loops = [
            await scheduler.spawn(self._poll_loop(stop, index))
            for index in range(self.workers)
        ]
        self._logger.info("worker_mode_started", loops=len(loops))
        try:
            await stop.wait()
        finally:
            stop.set()
            await asyncio.gather(
                *(loop.wait() for loop in loops),
                return_exceptions=True,
            )
            self._logger.info("worker_mode_stopped")
