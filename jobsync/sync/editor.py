"""Edit a job's descriptive fields, with attachments uploaded in the background."""

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from jobsync.backends.base import JobsBackend
from jobsync.core.schemas import parse_records
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.background import BackgroundAttachments
from jobsync.sync.cache import SessionCache
from jobsync.sync.errors import JobsApiError, ReauthenticationRequired

logger = logging.getLogger(__name__)

# Fields an edit may change; identity, status and timestamps are server-owned.
EDITABLE_FIELDS = frozenset({"job_title", "company_name", "job_description", "joblink", "date_added"})


class EditResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    job_id: str
    error: str | None = None
    reauth_required: bool = False


class JobEditor:
    def __init__(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: JobsBackend,
        background: BackgroundAttachments,
    ) -> None:
        self._cache = cache
        self._gate = gate
        self._backend = backend
        self._background = background

    async def edit(
        self,
        job_id: str,
        changes: dict[str, Any],
        files: list[Path] | None = None,
    ) -> EditResult:
        """Send the merged job to the server and adopt its collection."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            msg = f"Fields not editable: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        identity = self._cache.identity
        original = self._cache.find(identity.email, job_id) if identity else None
        if identity is None or original is None:
            return EditResult(ok=False, job_id=job_id, error="Job not found")

        edited = original.touch(**changes)
        try:
            response = await self._gate.guarded_request(
                lambda: self._backend.edit_job(identity, edited)
            )
        except ReauthenticationRequired:
            return EditResult(ok=False, job_id=job_id, reauth_required=True)
        except JobsApiError as e:
            return EditResult(ok=False, job_id=job_id, error=e.message)

        if not response.is_update_success:
            logger.warning("Edit of %s refused: %s", job_id, response.message)
            return EditResult(ok=False, job_id=job_id, error="Failed to update job")
        try:
            records = parse_records(response.body["updatedJobs"])
        except ValidationError:
            return EditResult(ok=False, job_id=job_id, error="Server returned a malformed job list")

        self._cache.set(identity.email, records)
        self._background.spawn(identity, job_id, files or [])
        logger.info("Edited %s", job_id)
        return EditResult(ok=True, job_id=job_id)
