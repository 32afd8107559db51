"""
In-process FIFO queue of sync batches.

A single consumer task processes jobs one at a time in enqueue order.
Jobs are held until the queue is marked initialized, so pages fetched
before authentication completes are not dropped.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from drivesync_lib.db.models import utcnow

from syncer import metrics

logger = logging.getLogger("drivesync-syncer.job_queue")


@dataclass
class SyncJob:
    """One page of raw file records waiting to be persisted."""

    file_records: list[dict[str, Any]]
    batch_id: str = field(default_factory=lambda: str(uuid4()))
    enqueued_at: datetime = field(default_factory=utcnow)


JobProcessor = Callable[[SyncJob], Awaitable[Any]]


class JobQueue:
    """
    Single-consumer job queue.

    Usage:
        queue = JobQueue(batch_processor.process)
        queue.start_monitoring()
        queue.set_initialized(True)
        result = await queue.enqueue(page.files)
    """

    def __init__(self, processor: JobProcessor | None = None) -> None:
        """
        Initialize the queue.

        Args:
            processor: Coroutine function run for each job.
        """
        self._processor = processor
        self._jobs: deque[tuple[SyncJob, asyncio.Future[Any]]] = deque()
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._initialized = False
        self._processing = False
        self._running = False
        self._consumer: asyncio.Task[None] | None = None

    @property
    def initialized(self) -> bool:
        """Whether the consumer may start processing."""
        return self._initialized

    @property
    def pending(self) -> int:
        """Jobs waiting, excluding the one in progress."""
        return len(self._jobs)

    @property
    def is_processing(self) -> bool:
        """Whether a job is in progress."""
        return self._processing

    def set_processor(self, processor: JobProcessor) -> None:
        """
        Set the coroutine that processes each job.

        Args:
            processor: Coroutine function taking a SyncJob.
        """
        self._processor = processor
        self._wakeup.set()

    def set_initialized(self, initialized: bool) -> None:
        """
        Open or close the processing gate.

        Args:
            initialized: True once the downstream system is ready.
        """
        self._initialized = initialized
        if initialized:
            self._wakeup.set()
        logger.info(f"📦 Job queue {'ready' if initialized else 'paused'}")

    def enqueue(self, file_records: Iterable[dict[str, Any]]) -> asyncio.Future[Any]:
        """
        Append a job to the tail of the queue.

        Args:
            file_records: Raw records from one listing page.

        Returns:
            Future resolved with the processor result, or with its exception.
        """
        job = SyncJob(file_records=list(file_records))
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._jobs.append((job, future))
        metrics.queue_depth.set(len(self._jobs))
        self._wakeup.set()
        logger.debug(
            f"📥 Enqueued batch {job.batch_id} ({len(job.file_records)} records, "
            f"{len(self._jobs)} pending)"
        )
        return future

    def start_monitoring(self) -> None:
        """Start the consumer task if it is not already running."""
        if self._consumer is not None and not self._consumer.done():
            return
        self._running = True
        self._consumer = asyncio.create_task(self._consume(), name="drivesync-job-queue")
        logger.info("🚀 Job queue consumer started")

    def _ready(self) -> bool:
        return self._initialized and self._processor is not None and bool(self._jobs)

    async def _consume(self) -> None:
        while self._running:
            if not self._ready():
                if not self._jobs:
                    self._idle.set()
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            job, future = self._jobs.popleft()
            metrics.queue_depth.set(len(self._jobs))
            if future.done():
                continue

            self._processing = True
            try:
                if self._processor is None:
                    raise RuntimeError("No job processor set")
                result = await self._processor(job)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                logger.exception(f"❌ Batch {job.batch_id} failed")
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._processing = False
                self._idle.set()

    async def join(self) -> None:
        """Wait until no job is pending or in progress."""
        while self._jobs or self._processing:
            self._idle.clear()
            await self._idle.wait()

    async def stop_monitoring(self) -> None:
        """
        Stop the consumer.

        An initialized queue is drained first; otherwise pending jobs are
        cancelled.
        """
        if self._consumer is None:
            return

        if self._initialized and self._processor is not None and self._running:
            logger.info(f"⏳ Draining {len(self._jobs)} pending jobs")
            await self.join()

        self._running = False
        self._wakeup.set()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None

        cancelled = 0
        while self._jobs:
            _, future = self._jobs.popleft()
            if not future.done():
                future.cancel()
                cancelled += 1
        metrics.queue_depth.set(0)
        self._idle.set()

        if cancelled:
            logger.warning(f"⚠️ Cancelled {cancelled} pending jobs")
        logger.info("🛑 Job queue consumer stopped")
