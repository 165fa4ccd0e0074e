"""Kanban status state machine with a resume/attachment gate.

Columns: saved → {applied, interviewing, offer, rejected} ↔ each other, and
``deleted`` reachable from anywhere. Only leaving ``saved`` for an active
pipeline column is gated: the job needs a resume or attachment first.

A gated drop parks a single PendingTransition and opens the attachment
surface for that job. The pending move is applied when the surface reports an
existing artifact or a completed upload, and discarded when the surface is
dismissed. A second gated drop replaces the first (the surface shows one job
at a time).

Deletion asks for a shared confirmation code. It guards against accidental
drops onto the deleted column; it is not an access control.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, ConfigDict, ValidationError

from jobsync.backends.base import JobsBackend
from jobsync.core.schemas import ACTIVE_PIPELINE, JobRecord, JobStatus, PendingTransition, parse_records
from jobsync.sync.artifacts import ArtifactIndex
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.cache import SessionCache
from jobsync.sync.errors import JobsApiError, ReauthenticationRequired

logger = logging.getLogger(__name__)


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    PENDING = "pending"
    IGNORED = "ignored"
    REJECTED = "rejected"
    FAILED = "failed"
    REAUTH_REQUIRED = "reauth_required"


class TransitionResult(BaseModel):
    """Outcome of a drop, a pending resolution or a delete."""

    model_config = ConfigDict(frozen=True)

    outcome: TransitionOutcome
    job_id: str
    target_status: JobStatus
    message: str = ""


class AttachmentSurface(ABC):
    """The UI that collects a resume or attachment for one job."""

    @abstractmethod
    def open(self, record: JobRecord) -> None:
        """Show the attachment collector scoped to ``record``."""


class StatusStateMachine:
    """Validates and executes status transitions requested by drag and drop."""

    def __init__(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: JobsBackend,
        artifacts: ArtifactIndex,
        surface: AttachmentSurface | None = None,
        deletion_code: str = "",
    ) -> None:
        self._cache = cache
        self._gate = gate
        self._backend = backend
        self._artifacts = artifacts
        self._surface = surface
        self._deletion_code = deletion_code
        self._pending: PendingTransition | None = None

    @property
    def pending(self) -> PendingTransition | None:
        return self._pending

    async def drop(
        self,
        job_id: str,
        target: JobStatus,
        confirmation_code: str | None = None,
    ) -> TransitionResult:
        """Handle a card dropped on the ``target`` column."""
        record = self._find(job_id)
        if record is None or record.current_status is target:
            return _result(TransitionOutcome.IGNORED, job_id, target)

        if target is JobStatus.DELETED:
            if not self._code_ok(confirmation_code):
                return _result(
                    TransitionOutcome.REJECTED, job_id, target, "Incorrect deletion code",
                )
            return await self.apply(job_id, target)

        if record.current_status is JobStatus.SAVED and target in ACTIVE_PIPELINE:
            if self._artifacts.has_artifact(record):
                return await self.apply(job_id, target)
            if self._pending is not None and self._pending.job_id != job_id:
                logger.info(
                    "Replacing pending move of %s with %s", self._pending.job_id, job_id,
                )
            self._pending = PendingTransition(job_id=job_id, target_status=target)
            if self._surface is not None:
                self._surface.open(record)
            logger.debug("Move of %s to %s waits for an attachment", job_id, target.value)
            return _result(
                TransitionOutcome.PENDING, job_id, target,
                "Attach a resume or file to move this job",
            )

        return await self.apply(job_id, target)

    async def artifact_check_done(self, job_id: str, exists: bool) -> TransitionResult | None:
        """The surface for ``job_id`` found (or did not find) an existing artifact.

        A report for a job that no longer owns the pending slot is ignored.
        A positive report is recorded in the artifact index, and the move only
        goes ahead once the index agrees the record has an artifact.
        """
        pending = self._pending
        if pending is None or pending.job_id != job_id or not exists:
            return None
        record = self._find(job_id)
        if record is None:
            self._pending = None
            return None
        self._artifacts.register_resume(job_id)
        if not self._artifacts.has_artifact(record):
            return None
        self._pending = None
        return await self.apply(pending.job_id, pending.target_status)

    async def upload_completed(
        self, job_id: str, url: str | None = None,
    ) -> TransitionResult | None:
        """An upload finished inside the surface for ``job_id``."""
        pending = self._pending
        if pending is None or pending.job_id != job_id:
            return None
        self._pending = None
        if url:
            identity = self._cache.identity
            if identity is not None:
                self._cache.mutate(identity.email, lambda records: [
                    r.model_copy(update={"attachments": [*r.attachments, url]})
                    if r.job_id == job_id else r
                    for r in records
                ])
        return await self.apply(pending.job_id, pending.target_status)

    def dismiss(self) -> None:
        """The surface closed without an artifact; the job stays where it was."""
        if self._pending is not None:
            logger.debug("Discarding pending move of %s", self._pending.job_id)
        self._pending = None

    async def apply(self, job_id: str, target: JobStatus) -> TransitionResult:
        """Send a status update and adopt the server's collection on success.

        The card moves locally first and moves back if the server refuses.
        """
        identity = self._cache.identity
        original = self._find(job_id)
        if identity is None or original is None:
            return _result(TransitionOutcome.IGNORED, job_id, target)

        optimistic = original.touch(current_status=target, status_actor=identity.status_actor)
        self._replace_record(original, optimistic)

        try:
            response = await self._gate.guarded_request(
                lambda: self._backend.update_status(identity, job_id, target)
            )
        except ReauthenticationRequired:
            return _result(TransitionOutcome.REAUTH_REQUIRED, job_id, target)
        except JobsApiError as e:
            self._replace_record(optimistic, original)
            return _result(TransitionOutcome.FAILED, job_id, target, e.message)

        if not response.is_update_success:
            self._replace_record(optimistic, original)
            logger.warning("Status update of %s refused: %s", job_id, response.message)
            return _result(
                TransitionOutcome.FAILED, job_id, target, "Failed to update job status",
            )

        try:
            records = parse_records(response.body["updatedJobs"])
        except ValidationError:
            self._replace_record(optimistic, original)
            return _result(
                TransitionOutcome.FAILED, job_id, target, "Server returned a malformed job list",
            )

        self._cache.set(identity.email, records)
        logger.info("Moved %s to %s", job_id, target.value)
        return _result(TransitionOutcome.APPLIED, job_id, target)

    async def delete_job(self, job_id: str, confirmation_code: str | None) -> TransitionResult:
        """Remove a job outright after the confirmation code matches."""
        target = JobStatus.DELETED
        if not self._code_ok(confirmation_code):
            return _result(TransitionOutcome.REJECTED, job_id, target, "Incorrect deletion code")
        identity = self._cache.identity
        if identity is None or self._find(job_id) is None:
            return _result(TransitionOutcome.IGNORED, job_id, target)

        try:
            response = await self._gate.guarded_request(
                lambda: self._backend.delete_job(identity, job_id)
            )
        except ReauthenticationRequired:
            return _result(TransitionOutcome.REAUTH_REQUIRED, job_id, target)
        except JobsApiError as e:
            return _result(TransitionOutcome.FAILED, job_id, target, e.message)

        if not response.is_update_success:
            return _result(TransitionOutcome.FAILED, job_id, target, "Failed to delete job")
        try:
            records = parse_records(response.body["updatedJobs"])
        except ValidationError:
            return _result(
                TransitionOutcome.FAILED, job_id, target, "Server returned a malformed job list",
            )
        self._cache.set(identity.email, records)
        if self._pending is not None and self._pending.job_id == job_id:
            self._pending = None
        logger.info("Deleted %s", job_id)
        return _result(TransitionOutcome.APPLIED, job_id, target)

    def _code_ok(self, code: str | None) -> bool:
        return bool(self._deletion_code) and code == self._deletion_code

    def _find(self, job_id: str) -> JobRecord | None:
        identity = self._cache.identity
        if identity is None:
            return None
        return self._cache.find(identity.email, job_id)

    def _replace_record(self, current: JobRecord, replacement: JobRecord) -> None:
        """Swap ``current`` for ``replacement`` only if nothing newer landed meanwhile."""
        identity = self._cache.identity
        if identity is None:
            return
        self._cache.mutate(identity.email, lambda records: [
            replacement if r == current else r for r in records
        ])


def _result(
    outcome: TransitionOutcome, job_id: str, target: JobStatus, message: str = "",
) -> TransitionResult:
    return TransitionResult(outcome=outcome, job_id=job_id, target_status=target, message=message)
