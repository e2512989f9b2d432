"""Poll a TrueNAS job until it reaches a terminal state."""

import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from naslock.errors import JobFailed
from naslock.truenas import JobInfo, JobProgress

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
FALLBACK_FAILURE_DETAIL = "job failed without error details"

_SUCCESS_STATES = frozenset({"SUCCESS"})
_FAILURE_STATES = frozenset({"FAILED", "ABORTED"})


class JobSource(Protocol):
    """Anything that can fetch a job record by id."""

    def get_job(self, job_id: int) -> JobInfo: ...


class JobState(StrEnum):
    """Tracker view of a job: pending until a terminal server state is seen."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def job_state(job: JobInfo) -> JobState:
    """Map the opaque server state string to a tracker state."""
    if job.state in _SUCCESS_STATES:
        return JobState.SUCCEEDED
    if job.state in _FAILURE_STATES:
        return JobState.FAILED
    return JobState.PENDING


def failure_detail(job: JobInfo) -> str:
    """Pick the most specific failure text: error, then exception, then a generic fallback."""
    return job.error or job.exception or FALLBACK_FAILURE_DETAIL


class JobTracker:
    """Blocking poll loop with a fixed interval and no retry ceiling."""

    def __init__(
        self,
        source: JobSource,
        *,
        on_progress: Callable[[JobProgress], None] | None = None,
        interval: float = POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the tracker.

        Args:
            source: Client used to fetch job records.
            on_progress: Called once per distinct (percent, description) pair.
            interval: Seconds between polls.
            sleep: Sleep function (injectable for tests).

        """
        self._source = source
        self._on_progress = on_progress
        self._interval = interval
        self._sleep = sleep

    def wait(self, job_id: int) -> JobInfo:
        """Poll until the job succeeds and return its final record.

        Errors from the source (JobNotFound, JobQueryError, ...) propagate without retry.

        Raises:
            JobFailed: Job ended FAILED or ABORTED.

        """
        logger.info("Waiting for job %d", job_id)
        last_progress: JobProgress | None = None
        last_state: str | None = None
        while True:
            job = self._source.get_job(job_id)

            if job.state != last_state:
                logger.debug("Job %d state: %s", job_id, job.state)
                last_state = job.state

            if job.progress is not None and job.progress != last_progress:
                last_progress = job.progress
                if self._on_progress is not None:
                    self._on_progress(job.progress)

            match job_state(job):
                case JobState.SUCCEEDED:
                    logger.info("Job %d succeeded", job_id)
                    return job
                case JobState.FAILED:
                    detail = failure_detail(job)
                    logger.warning("Job %d failed: %s", job_id, detail)
                    raise JobFailed(job_id, detail)
                case JobState.PENDING:
                    self._sleep(self._interval)
