"""Optimistic job creation.

``create_job`` races two things:

- a timer (2.5 s by default) that inserts the new job at the top of the cache
  and lets the form close, so a slow network still feels instant;
- a minimal create request whose answer decides what really happened.

Resolution rules:

- duplicate rejection: the timer is cancelled and the form stays open. A
  duplicate always wins; if the timer already inserted the job, it is removed.
- success: the server's full list replaces the cache (superseding any
  optimistic insert) and pasted files upload in the background.
- transport failure: nothing is corrected; the timer's insert stands until the
  next successful fetch replaces the collection.
- any other refusal: the timer is cancelled, any insert is removed and the form
  stays open with an error.

Every callback checks the attempt's ``settled``/``closed`` flags before it
touches the cache, so the order in which the timer and the response land does
not matter.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, ValidationError

from jobsync.backends.base import DUPLICATE_MESSAGE, JobsBackend
from jobsync.core.schemas import JobDraft, JobRecord, JobStatus, parse_records
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.background import BackgroundAttachments
from jobsync.sync.cache import SessionCache
from jobsync.sync.errors import JobsApiError, ReauthenticationRequired
from jobsync.sync.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Failed to save job. Please try again."


class CreationStatus(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    OPTIMISTIC = "optimistic"
    FAILED = "failed"
    REAUTH_REQUIRED = "reauth_required"


class CreationOutcome(BaseModel):
    """How a create attempt ended.

    ``form_closed`` False means the form should be showing, with ``error``.
    """

    model_config = ConfigDict(frozen=True)

    status: CreationStatus
    job_id: str
    form_closed: bool
    error: str | None = None


class _Attempt:
    """Mutable state shared by the timer callback and the response handler."""

    def __init__(self, record: JobRecord, owner_email: str) -> None:
        self.record = record
        self.owner_email = owner_email
        self.timer: TimerHandle | None = None
        self.settled = False
        self.closed = False
        self.inserted = False


class CreationProtocol:
    """Creates jobs with a timed optimistic insert and server reconciliation."""

    def __init__(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: JobsBackend,
        background: BackgroundAttachments,
        scheduler: Scheduler,
        close_after_seconds: float = 2.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._gate = gate
        self._backend = backend
        self._background = background
        self._scheduler = scheduler
        self._close_after = close_after_seconds
        self._clock = clock
        self._last_job_id = 0
        self._unsettled: set[_Attempt] = set()

    async def create_job(
        self,
        draft: JobDraft,
        on_close: Callable[[], None] | None = None,
    ) -> CreationOutcome:
        """Create a job from ``draft``; ``on_close`` fires once when the form may close."""
        identity = self._cache.identity
        if identity is None:
            return CreationOutcome(
                status=CreationStatus.FAILED, job_id="", form_closed=False,
                error="No active identity",
            )

        record = self._build_record(draft, identity.email)
        attempt = _Attempt(record, identity.email)
        self._unsettled.add(attempt)

        def close_form() -> None:
            if attempt.closed:
                return
            attempt.closed = True
            if on_close is not None:
                on_close()

        def on_timer() -> None:
            attempt.timer = None
            self._unsettled.discard(attempt)
            if attempt.settled or attempt.closed:
                return
            self._cache.mutate(attempt.owner_email, lambda records: [
                record, *(r for r in records if r.job_id != record.job_id),
            ])
            attempt.inserted = True
            logger.debug("Optimistic insert of %s", record.job_id)
            close_form()

        attempt.timer = self._scheduler.call_later(self._close_after, on_timer)

        try:
            response = await self._gate.guarded_request(
                lambda: self._backend.add_job(identity, record)
            )
        except ReauthenticationRequired:
            self._settle(attempt)
            return CreationOutcome(
                status=CreationStatus.REAUTH_REQUIRED, job_id=record.job_id,
                form_closed=attempt.closed,
            )
        except JobsApiError as e:
            # The timer stays armed: its insert is the accepted outcome of a timeout.
            logger.warning("Create request for %s failed: %s", record.job_id, e.message)
            return CreationOutcome(
                status=CreationStatus.OPTIMISTIC, job_id=record.job_id,
                form_closed=attempt.closed, error=e.message,
            )

        if response.is_duplicate:
            self._settle(attempt)
            self._remove_optimistic(attempt)
            logger.info("Duplicate job rejected: %s at %s", record.job_title, record.company_name)
            return CreationOutcome(
                status=CreationStatus.DUPLICATE, job_id=record.job_id, form_closed=False,
                error=response.message or DUPLICATE_MESSAGE,
            )

        records = None
        if response.ok and "NewJobList" in response.body:
            try:
                records = parse_records(response.body["NewJobList"])
            except ValidationError as e:
                logger.error("Create response for %s was malformed: %s", record.job_id, e)

        if records is None:
            self._settle(attempt)
            self._remove_optimistic(attempt)
            logger.warning(
                "Create of %s refused (HTTP %d): %s",
                record.job_id, response.status_code, response.message,
            )
            return CreationOutcome(
                status=CreationStatus.FAILED, job_id=record.job_id, form_closed=False,
                error=SAVE_FAILED_MESSAGE,
            )

        self._settle(attempt)
        self._cache.set(attempt.owner_email, records)
        close_form()
        self._background.spawn(identity, record.job_id, draft.pasted_files)
        logger.info("Created job %s (%s at %s)", record.job_id, record.job_title, record.company_name)
        return CreationOutcome(
            status=CreationStatus.CREATED, job_id=record.job_id, form_closed=True,
        )

    def cancel(self) -> None:
        """Unmount: disarm the timer of every attempt that has not settled."""
        for attempt in self._unsettled:
            self._cancel_timer(attempt)
        self._unsettled.clear()

    async def drain(self) -> None:
        await self._background.drain()

    def _settle(self, attempt: _Attempt) -> None:
        attempt.settled = True
        self._unsettled.discard(attempt)
        self._cancel_timer(attempt)

    def _cancel_timer(self, attempt: _Attempt) -> None:
        if attempt.timer is not None:
            attempt.timer.cancel()
            attempt.timer = None

    def _remove_optimistic(self, attempt: _Attempt) -> None:
        if not attempt.inserted:
            return
        job_id = attempt.record.job_id
        self._cache.mutate(attempt.owner_email, lambda records: [
            r for r in records if r.job_id != job_id
        ])
        attempt.inserted = False
        logger.debug("Removed optimistic record %s", job_id)

    def _next_job_id(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_job_id:
            candidate = self._last_job_id + 1
        self._last_job_id = candidate
        return str(candidate)

    def _build_record(self, draft: JobDraft, owner_email: str) -> JobRecord:
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return JobRecord(
            job_id=self._next_job_id(),
            job_title=draft.job_title,
            company_name=draft.company_name,
            job_description=draft.job_description,
            joblink=draft.joblink,
            current_status=JobStatus.SAVED,
            date_added=draft.date_added or now.strftime("%m/%d/%Y, %I:%M:%S %p"),
            created_at=now,
            updated_at=now,
            user_id=owner_email,
        )
