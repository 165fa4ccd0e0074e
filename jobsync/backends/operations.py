"""Operations backend: an internal operator manages a user's jobs without a token."""

from jobsync.backends.base import ApiResponse, HttpJobsBackend
from jobsync.core.schemas import Identity, JobRecord, JobStatus, status_label


class OperationsBackend(HttpJobsBackend):
    """Backend for the operations impersonation role."""

    @property
    def backend_id(self) -> str:
        return "operations"

    async def fetch_all(self, identity: Identity) -> ApiResponse:
        return await self._send("POST", "/operations/alljobs", {"email": identity.email})

    async def add_job(self, identity: Identity, job: JobRecord) -> ApiResponse:
        job_details = job.to_wire()
        job_details.pop("attachments", None)
        return await self._send(
            "POST",
            "/addjob",
            {"jobDetails": job_details, "userDetails": identity.user_details()},
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
            "action": f"edited by {identity.status_actor}",
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
            "/operations/jobs",
            {**payload, "userDetails": identity.user_details()},
        )