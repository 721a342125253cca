"""Per-file upload with bounded retries and suppression policy."""
import asyncio
import logging
from typing import Optional

from ..errors import NetworkFailure
from ..protocols import UploadCallable
from ..models import (
    DEFAULT_MAX_ATTEMPTS,
    ExhaustedRetries,
    SuppressionPolicy,
    UploadOutcome,
)
from ..utils.events import EventEmitter
from .models import FileUploadTask, OutcomeLog

logger = logging.getLogger(__name__)


class RetryingUploader:
    """
    Drives one FileUploadTask to a terminal outcome.

    Attempts the upload up to ``max_attempts`` times. A failure the policy
    suppresses (every failure with ``suppress_errors``, a 409 with
    ``suppress_conflict_error``) ends the task at once without retrying.
    Any other failure is retried until attempts run out, after which the
    task is recorded as FAILED; whether that fails the batch is decided by
    the orchestrator from ``policy.exhausted_retries``. An unexpected
    exception ends the task as FAILED at once.

    Never raises for upload failures: every task ends up in the OutcomeLog.
    """

    def __init__(
        self,
        upload: UploadCallable,
        policy: SuppressionPolicy,
        outcomes: OutcomeLog,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff: float = 0.0,
        events: Optional[EventEmitter] = None,
    ):
        self._upload = upload
        self._policy = policy
        self._outcomes = outcomes
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._events = events or EventEmitter()

    @property
    def outcomes(self) -> OutcomeLog:
        return self._outcomes

    async def upload(self, task: FileUploadTask) -> UploadOutcome:
        await self._events.emit("file_start", task)
        last_error: Optional[Exception] = None

        while task.attempt_count < self._max_attempts:
            task.attempt_count += 1
            try:
                await self._upload(task)
            except (NetworkFailure, OSError) as exc:
                last_error = exc
                if self._policy.suppresses(exc):
                    logger.warning(f"Upload of {task.remote_name} failed, suppressed: {exc}")
                    outcome = UploadOutcome.suppressed(
                        task.remote_name, task.source_path, task.attempt_count, exc
                    )
                    return await self._finish(outcome, "file_fail")

                logger.warning(
                    f"Upload attempt {task.attempt_count}/{self._max_attempts} "
                    f"failed for {task.remote_name}: {exc}"
                )
                if task.attempt_count < self._max_attempts:
                    await self._events.emit("file_retry", task, exc)
                    if self._retry_backoff:
                        await asyncio.sleep(self._retry_backoff * task.attempt_count)
                continue
            except Exception as exc:
                logger.exception(f"Unexpected error uploading {task.remote_name}")
                outcome = UploadOutcome.fail(task.remote_name, task.source_path, task.attempt_count, exc)
                return await self._finish(outcome, "file_fail")

            logger.info(f"Uploaded {task.remote_name}")
            outcome = UploadOutcome.ok(task.remote_name, task.source_path, task.attempt_count)
            return await self._finish(outcome, "file_complete")

        level = (
            logging.ERROR
            if self._policy.exhausted_retries == ExhaustedRetries.PROPAGATE
            else logging.WARNING
        )
        logger.log(level, f"Giving up on {task.remote_name} after {task.attempt_count} attempts")
        outcome = UploadOutcome.fail(task.remote_name, task.source_path, task.attempt_count, last_error)
        return await self._finish(outcome, "file_fail")

    __call__ = upload

    async def _finish(self, outcome: UploadOutcome, event_name: str) -> UploadOutcome:
        self._outcomes.record(outcome)
        await self._events.emit(event_name, outcome)
        return outcome
