"""Parallel upload utilities."""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def get_parallel_count(concurrency: Optional[int], task_count: int) -> int:
    """
    Get the number of workers to start for a batch.

    ``None`` means unbounded: one worker per task. Values below 1 are
    normalized to 1. More workers than tasks are never started, so any
    bound at or above the task count behaves exactly like the task count.
    """
    if task_count <= 0:
        return 0
    if concurrency is None:
        return task_count
    if concurrency < 1:
        logger.warning(f"Concurrency {concurrency} is below 1, using 1")
        concurrency = 1
    return min(concurrency, task_count)
