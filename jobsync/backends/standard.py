"""Standard user backend: bearer token on reads, token in body on writes."""

import httpx

from jobsync.backends.base import ApiResponse, HttpJobsBackend
from jobsync.core.schemas import Identity, JobRecord, JobStatus, status_label
from jobsync.sync.auth_gate import CredentialProvider


class StandardBackend(HttpJobsBackend):
    """Backend for a user managing their own jobs."""

    def __init__(self, client: httpx.AsyncClient, credentials: CredentialProvider) -> None:
        super().__init__(client)
        self._credentials = credentials

    @property
    def backend_id(self) -> str:
        return "standard"

    # The token is read on every call so a replay after refresh picks up the new one.

    async def fetch_all(self, identity: Identity) -> ApiResponse:
        return await self._send(
            "POST",
            "/getalljobs",
            {"email": identity.email},
            headers={"Authorization": f"Bearer {self._credentials.token or ''}"},
        )

    async def add_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        job_details = job.to_wire()
        job_details.pop("attachments", None)
        return await self._send(
            "POST",
            "/addjob",
            {
                "jobDetails": job_details,
                "userDetails": identity.user_details(),
                "token": self._credentials.token,
            },
        )

    async def update_status(
        self, identity: Identity, job_id: str, status: JobStatus,
    ) -> ApiResponse:
        return await self._update(identity, {
            "action": "UpdateStatus",
            "jobID": job_id,
            "status": status_label(status, identity.status_actor),
        })

    async def edit_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        return await self._update(identity, {
            "action": "edit",
            "jobID": job.job_id,
            "jobDetails": {**job.to_wire(), "userID": identity.email},
        })

    async def attach_urls(
        self, identity: Identity, job_id: str, urls: list[str],
    ) -> ApiResponse:
        return await self._update(identity, {
            "action": "edit",
            "jobID": job_id,
            "attachmentUrls": urls,
        })

    async def delete_job(self, identity: Identity, job_id: str) -> ApiResponse:
        return await self._update(identity, {"action": "delete", "jobID": job_id})

    async def _update(self, identity: Identity, payload: dict) -> ApiResponse:
        return await self._send(
            "PUT",
            "/updatechanges",
            {
                **payload,
                "userDetails": identity.user_details(),
                "token": self._credentials.token,
            },
        )
