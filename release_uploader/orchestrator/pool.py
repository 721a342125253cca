"""Concurrency-bounded worker pool for file uploads."""
import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, Optional

from ..protocols import UploadCallable
from .models import FileUploadTask
from .parallel import get_parallel_count

logger = logging.getLogger(__name__)


class UploadPool:
    """
    Drains a work queue running at most ``concurrency`` uploads at once.

    Each worker pops the next task as soon as its previous one settles, so
    the pool stays saturated until the queue is empty. ``run`` returns once
    every in-flight upload has settled. Pops happen without an await between
    the emptiness check and the removal, so no task reaches two workers.

    Usage:
        pool = UploadPool(uploader.upload, concurrency=4)
        processed = await pool.run(tasks)
    """

    def __init__(
        self,
        worker: UploadCallable,
        concurrency: Optional[int] = None,
    ):
        self._worker = worker
        self._concurrency = concurrency
        self._in_flight = 0
        self.peak_in_flight = 0
        self.processed = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run(self, tasks: Iterable[FileUploadTask]) -> int:
        """Process every task exactly once. Returns the number processed."""
        queue: Deque[FileUploadTask] = deque(tasks)
        self.processed = 0
        self.peak_in_flight = 0

        workers = get_parallel_count(self._concurrency, len(queue))
        if not workers:
            logger.info("No files to upload")
            return 0

        limit = "unbounded" if self._concurrency is None else str(self._concurrency)
        logger.info(f"Uploading {len(queue)} files with {workers} workers (limit: {limit})")

        await asyncio.gather(*(self._drain(queue) for _ in range(workers)))
        return self.processed

    async def _drain(self, queue: Deque[FileUploadTask]) -> None:
        while queue:
            task = queue.pop()
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                await self._worker(task)
            except Exception:
                # Per-file failures are resolved by the worker; anything
                # reaching here is a bug and must not stop the batch.
                logger.exception(f"Unexpected error uploading {task.remote_name}")
            finally:
                self._in_flight -= 1
                self.processed += 1
