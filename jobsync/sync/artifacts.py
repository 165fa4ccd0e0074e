"""Local check for whether a job already has a resume or attachment."""

import logging

from jobsync.core.schemas import JobRecord

logger = logging.getLogger(__name__)


class ArtifactIndex:
    """Knows which jobs have an optimized resume or an uploaded attachment.

    Optimized resumes live outside the job record (the resume editor owns
    them), so they are registered here by job id. Attachments come from the
    record itself.
    """

    def __init__(self, resume_job_ids: list[str] | None = None) -> None:
        self._resume_job_ids: set[str] = set(resume_job_ids or [])

    def register_resume(self, job_id: str) -> None:
        self._resume_job_ids.add(job_id)

    def has_artifact(self, record: JobRecord) -> bool:
        exists = bool(record.attachments) or record.job_id in self._resume_job_ids
        logger.debug("Artifact check for %s: %s", record.job_id, exists)
        return exists
