"""Abstract jobs backend and shared HTTP plumbing.

Two surfaces serve the same collection: the standard user API (bearer token)
and the operations API (an operator acting for a user, no token). The engine
picks one at construction time and never branches on role afterwards.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field

from jobsync.core.schemas import Identity, JobRecord, JobStatus
from jobsync.sync.errors import JobsApiError

logger = logging.getLogger(__name__)

UPDATE_OK_MESSAGE = "Jobs updated successfully"
DUPLICATE_MESSAGE = "Job Already Exist !"


class ApiResponse(BaseModel):
    """Status code plus parsed JSON body (empty dict if the body was not JSON)."""

    status_code: int
    body: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def message(self) -> str:
        message = self.body.get("message")
        return message if isinstance(message, str) else ""

    @property
    def is_duplicate(self) -> bool:
        return self.status_code == 403 or self.message == DUPLICATE_MESSAGE

    @property
    def is_update_success(self) -> bool:
        return self.message == UPDATE_OK_MESSAGE and "updatedJobs" in self.body


class JobsBackend(ABC):
    """Base class that every jobs backend must implement."""

    @property
    @abstractmethod
    def backend_id(self) -> str:
        """Unique identifier for this backend (e.g. 'standard')."""

    @abstractmethod
    async def fetch_all(self, identity: Identity) -> ApiResponse:
        """Fetch the owner's full job collection (``allJobs``)."""

    @abstractmethod
    async def add_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        """Create a job without attachments (``NewJobList`` on success)."""

    @abstractmethod
    async def update_status(
        self, identity: Identity, job_id: str, status: JobStatus,
    ) -> ApiResponse:
        """Move a job to ``status`` (``updatedJobs`` on success)."""

    @abstractmethod
    async def edit_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        """Replace a job's descriptive fields."""

    @abstractmethod
    async def attach_urls(
        self, identity: Identity, job_id: str, urls: list[str],
    ) -> ApiResponse:
        """Append attachment URLs to a job (server de-duplicates)."""

    @abstractmethod
    async def delete_job(self, identity: Identity, job_id: str) -> ApiResponse:
        """Remove a job."""


class HttpJobsBackend(JobsBackend):
    """Shared request helpers over an ``httpx.AsyncClient``.

    The client is owned by the caller; its ``base_url`` points at the server.
    Transport failures are wrapped in ``JobsApiError(transport=True)``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _send(
        self,
        method: str,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> ApiResponse:
        try:
            resp = await self._client.request(method, path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            msg = f"Network error calling {path}: {e}"
            raise JobsApiError(msg, transport=True) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return ApiResponse(status_code=resp.status_code, body=body)
