"""Shared fakes: backend, credentials, virtual clock and scheduler."""

import inspect
from collections import defaultdict, deque
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from jobsync.backends.base import ApiResponse, JobsBackend
from jobsync.core.schemas import Identity, JobRecord, JobStatus
from jobsync.storage.uploader import AttachmentUploader
from jobsync.sync.artifacts import ArtifactIndex
from jobsync.sync.auth_gate import AuthRefreshGate, CredentialProvider
from jobsync.sync.cache import SessionCache
from jobsync.sync.scheduler import Scheduler, TimerHandle
from jobsync.sync.state_machine import AttachmentSurface

# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------


def wire_job(job_id: str, status: str = "saved", **overrides: Any) -> dict[str, Any]:
    """A job as the server returns it."""
    data: dict[str, Any] = {
        "jobID": job_id,
        "jobTitle": f"Engineer {job_id}",
        "companyName": "Acme",
        "jobDescription": "",
        "joblink": f"https://acme.example/jobs/{job_id}",
        "currentStatus": status,
        "dateAdded": "8/29/2025, 9:28:31 AM",
        "createdAt": "2025-08-29T09:28:31.000Z",
        "updatedAt": "2025-08-29T09:28:31.000Z",
        "attachments": [],
        "userID": "ana@example.com",
    }
    data.update(overrides)
    return data


def all_jobs(*jobs: dict[str, Any]) -> ApiResponse:
    return ApiResponse(status_code=200, body={"allJobs": list(jobs)})


def updated_jobs(*jobs: dict[str, Any]) -> ApiResponse:
    return ApiResponse(
        status_code=200,
        body={"message": "Jobs updated successfully", "updatedJobs": list(jobs)},
    )


def new_job_list(*jobs: dict[str, Any]) -> ApiResponse:
    return ApiResponse(status_code=200, body={"message": "Job added", "NewJobList": list(jobs)})


EXPIRED = ApiResponse(status_code=401, body={"message": "Invalid token or expired"})


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class FakeBackend(JobsBackend):
    """Replays queued responses per method and records every call.

    A queued item may be an ApiResponse, an exception instance (raised), or an
    awaitable such as a Future or coroutine (awaited, so a test can hold the
    response back or observe state mid-request).
    """

    def __init__(self) -> None:
        self.queues: dict[str, deque[Any]] = defaultdict(deque)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    @property
    def backend_id(self) -> str:
        return "fake"

    def queue(self, method: str, *items: Any) -> None:
        self.queues[method].extend(items)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def _respond(self, method: str, *args: Any) -> ApiResponse:
        self.calls.append((method, args))
        if not self.queues[method]:
            msg = f"No response queued for {method}"
            raise AssertionError(msg)
        item = self.queues[method].popleft()
        if inspect.isawaitable(item):
            item = await item
        if isinstance(item, BaseException):
            raise item
        return item

    async def fetch_all(self, identity: Identity) -> ApiResponse:
        return await self._respond("fetch_all", identity)

    async def add_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        return await self._respond("add_job", identity, job)

    async def update_status(self, identity: Identity, job_id: str, status: JobStatus) -> ApiResponse:
        return await self._respond("update_status", identity, job_id, status)

    async def edit_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        return await self._respond("edit_job", identity, job)

    async def attach_urls(self, identity: Identity, job_id: str, urls: list[str]) -> ApiResponse:
        return await self._respond("attach_urls", identity, job_id, urls)

    async def delete_job(self, identity: Identity, job_id: str) -> ApiResponse:
        return await self._respond("delete_job", identity, job_id)


# ---------------------------------------------------------------------------
# Credentials, clock, scheduler, surface, uploader
# ---------------------------------------------------------------------------


class FakeCredentials(CredentialProvider):
    def __init__(self, token: str | None = "tok-1", refresh_ok: bool = True) -> None:
        self._token = token
        self.refresh_ok = refresh_ok
        self.refresh_calls = 0
        self.cleared = False

    @property
    def token(self) -> str | None:
        return self._token

    async def refresh(self) -> bool:
        self.refresh_calls += 1
        if self.refresh_ok:
            self._token = f"tok-{self.refresh_calls + 1}"
        return self.refresh_ok

    def clear(self) -> None:
        self.cleared = True
        self._token = None


class FakeClock:
    """Wall clock in epoch seconds that only moves when told to."""

    def __init__(self, now: float = 1_760_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _ManualTimer(TimerHandle):
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual-time scheduler: callbacks run only from ``advance``."""

    def __init__(self) -> None:
        self.time = 0.0
        self.timers: list[_ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self.time + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.time += seconds
        for timer in list(self.timers):
            if not timer.cancelled and not timer.fired and timer.due <= self.time:
                timer.fired = True
                timer.callback()

    @property
    def armed(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled and not t.fired)


class RecordingSurface(AttachmentSurface):
    def __init__(self) -> None:
        self.opened: list[str] = []

    def open(self, record: JobRecord) -> None:
        self.opened.append(record.job_id)


class FakeUploader(AttachmentUploader):
    def __init__(self, fail: set[str] | None = None) -> None:
        self.fail = fail or set()
        self.uploaded: list[str] = []

    async def upload(self, file: Path) -> str:
        if file.name in self.fail:
            msg = f"cannot read {file.name}"
            raise OSError(msg)
        self.uploaded.append(file.name)
        return f"https://cdn.example.com/{file.name}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def identity() -> Identity:
    return Identity(email="ana@example.com", name="Ana")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock, identity: Identity) -> SessionCache:
    c = SessionCache(clock=clock)
    c.init(identity)
    return c


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def gate(credentials: FakeCredentials, cache: SessionCache) -> AuthRefreshGate:
    return AuthRefreshGate(credentials, on_reauth_required=cache.teardown)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture
def artifacts() -> ArtifactIndex:
    return ArtifactIndex()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()
