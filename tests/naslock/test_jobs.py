"""Tests for the job polling state machine."""

import pytest

from naslock.errors import JobFailed, JobNotFound
from naslock.jobs import FALLBACK_FAILURE_DETAIL, JobState, JobTracker, failure_detail, job_state
from naslock.truenas import JobInfo, JobProgress


class FakeSource:
    """Returns scripted job records in order and counts calls."""

    def __init__(self, jobs: list[JobInfo | Exception]) -> None:
        self._jobs = list(jobs)
        self.calls = 0

    def get_job(self, job_id: int) -> JobInfo:
        self.calls += 1
        item = self._jobs.pop(0)
        if isinstance(item, Exception):
            raise item
        assert item.id == job_id
        return item


def run(jobs: list[JobInfo | Exception]) -> tuple[JobInfo, list[JobProgress], list[float], FakeSource]:
    source = FakeSource(jobs)
    progress: list[JobProgress] = []
    sleeps: list[float] = []
    tracker = JobTracker(source, on_progress=progress.append, sleep=sleeps.append)
    return tracker.wait(7), progress, sleeps, source


class TestJobState:
    """Server state -> tracker state."""

    @pytest.mark.parametrize(
        ("state", "expected"),
        [
            ("SUCCESS", JobState.SUCCEEDED),
            ("FAILED", JobState.FAILED),
            ("ABORTED", JobState.FAILED),
            ("RUNNING", JobState.PENDING),
            ("WAITING", JobState.PENDING),
            (None, JobState.PENDING),
            ("success", JobState.PENDING),
        ],
    )
    def test_mapping(self, state: str | None, expected: JobState):
        """Only SUCCESS, FAILED, and ABORTED are terminal."""
        assert job_state(JobInfo(id=1, state=state)) == expected

    def test_failure_detail_prefers_error(self):
        """error wins over exception."""
        assert failure_detail(JobInfo(id=1, error="disk busy", exception="Traceback")) == "disk busy"

    def test_failure_detail_exception(self):
        """exception is used when error is absent."""
        assert failure_detail(JobInfo(id=1, exception="Traceback")) == "Traceback"

    def test_failure_detail_fallback(self):
        """Generic text when neither is present."""
        assert failure_detail(JobInfo(id=1)) == FALLBACK_FAILURE_DETAIL


class TestJobTracker:
    """Polling loop."""

    def test_pending_until_success(self):
        """[null, RUNNING, RUNNING, SUCCESS] polls four times and returns once."""
        jobs = [JobInfo(id=7), JobInfo(id=7, state="RUNNING"), JobInfo(id=7, state="RUNNING"), JobInfo(id=7, state="SUCCESS")]
        job, _, sleeps, source = run(jobs)
        assert job.state == "SUCCESS"
        assert source.calls == 4
        assert sleeps == [1.0, 1.0, 1.0]

    def test_progress_deduplicated(self):
        """Identical consecutive progress is emitted once; changes are emitted."""
        p10 = JobProgress(percent=10)
        p50 = JobProgress(percent=50, description="Unlocking")
        jobs = [
            JobInfo(id=7, state="RUNNING", progress=p10),
            JobInfo(id=7, state="RUNNING", progress=JobProgress(percent=10)),
            JobInfo(id=7, state="RUNNING", progress=p50),
            JobInfo(id=7, state="SUCCESS", progress=JobProgress(percent=50, description="Unlocking")),
        ]
        _, progress, _, _ = run(jobs)
        assert progress == [p10, p50]

    def test_description_only_change_emitted(self):
        """A description change with the same percent is a new progress tuple."""
        jobs = [
            JobInfo(id=7, state="RUNNING", progress=JobProgress(percent=100, description="a")),
            JobInfo(id=7, state="SUCCESS", progress=JobProgress(percent=100, description="b")),
        ]
        _, progress, _, _ = run(jobs)
        assert [p.description for p in progress] == ["a", "b"]

    def test_no_progress(self):
        """Jobs without progress emit nothing."""
        _, progress, sleeps, _ = run([JobInfo(id=7, state="SUCCESS")])
        assert progress == []
        assert sleeps == []

    def test_failed_with_error(self):
        """FAILED raises JobFailed with the error text."""
        with pytest.raises(JobFailed) as exc_info:
            run([JobInfo(id=7, state="RUNNING"), JobInfo(id=7, state="FAILED", error="disk busy")])
        assert exc_info.value.detail == "disk busy"
        assert exc_info.value.job_id == 7

    def test_aborted_without_details(self):
        """ABORTED without error or exception uses the generic text."""
        with pytest.raises(JobFailed) as exc_info:
            run([JobInfo(id=7, state="ABORTED")])
        assert exc_info.value.detail == FALLBACK_FAILURE_DETAIL

    def test_job_not_found_not_retried(self):
        """Source errors propagate on the first occurrence."""
        source = FakeSource([JobNotFound(7), JobInfo(id=7, state="SUCCESS")])
        with pytest.raises(JobNotFound):
            JobTracker(source, sleep=lambda _: None).wait(7)
        assert source.calls == 1

    def test_custom_interval(self):
        """The configured interval is passed to sleep."""
        source = FakeSource([JobInfo(id=7), JobInfo(id=7, state="SUCCESS")])
        sleeps: list[float] = []
        JobTracker(source, interval=0.25, sleep=sleeps.append).wait(7)
        assert sleeps == [0.25]
