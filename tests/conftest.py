"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path

from movejob_app.collaborators import PaymentRequest, RemoteJob
from movejob_app.persistence.job_state_store import JobStateStore
from movejob_app.utils.time import MS_PER_MINUTE

# 2024-03-01T08:00:00Z
START_MS = 1709280000000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

    def advance_minutes(self, minutes: float) -> int:
        return self.advance(int(minutes * MS_PER_MINUTE))


class RecordingPayments:
    """Payment collaborator that records every request."""

    def __init__(self, fail: bool = False):
        self.requests: list[PaymentRequest] = []
        self.fail = fail

    async def request_payment(self, request: PaymentRequest) -> None:
        self.requests.append(request)
        if self.fail:
            raise ConnectionError("payments provider unreachable")


class FakeRemoteSource:
    """Remote job source serving canned jobs and counting fetches."""

    def __init__(self, *jobs: RemoteJob):
        self.jobs = {job.job_id: job for job in jobs}
        self.fetches: list[str] = []

    async def fetch_job(self, job_id: str) -> RemoteJob:
        self.fetches.append(job_id)
        return self.jobs[job_id]


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a throwaway SQLite database."""
    return str(tmp_path / "job_states.db")


@pytest.fixture
def progress_store(db_path: str, clock: FakeClock) -> JobStateStore:
    return JobStateStore(db_path, clock=clock)


@pytest.fixture
def timer_store(db_path: str, clock: FakeClock) -> JobStateStore:
    return JobStateStore(
        db_path,
        key_prefix="job_timer_",
        index_key="job_timers_index",
        clock=clock,
    )


@pytest.fixture
def payments() -> RecordingPayments:
    return RecordingPayments()


@pytest.fixture
def remote_source() -> FakeRemoteSource:
    """Three-stop job plus a single-stop job."""
    return FakeRemoteSource(
        RemoteJob(
            job_id="job-001",
            stop_labels=("12 Pitt St", "48 George St", "3 King St"),
        ),
        RemoteJob(job_id="job-002", stop_labels=("1 Bay Rd",)),
    )
