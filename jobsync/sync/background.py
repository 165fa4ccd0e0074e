"""Detached attachment upload + persist tasks.

Uploading pasted files never blocks the caller: the task is spawned and
tracked here, failures are logged, and the job it belongs to stays visible
whatever happens.
"""

import asyncio
import logging
from pathlib import Path

from pydantic import ValidationError

from jobsync.backends.base import JobsBackend
from jobsync.core.schemas import Identity, parse_records
from jobsync.storage.uploader import AttachmentUploader
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.cache import SessionCache

logger = logging.getLogger(__name__)


class BackgroundAttachments:
    """Spawns and tracks best-effort attachment uploads."""

    def __init__(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: JobsBackend,
        uploader: AttachmentUploader,
    ) -> None:
        self._cache = cache
        self._gate = gate
        self._backend = backend
        self._uploader = uploader
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def spawn(self, identity: Identity, job_id: str, files: list[Path]) -> asyncio.Task[None] | None:
        """Start uploading ``files`` for ``job_id``. Returns None if there is nothing to do."""
        if not files:
            return None
        task = asyncio.create_task(self._run(identity, job_id, list(files)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight upload to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, identity: Identity, job_id: str, files: list[Path]) -> None:
        try:
            urls = await self._uploader.upload_all(files)
            if not urls:
                logger.warning("No attachments uploaded for %s", job_id)
                return
            response = await self._gate.guarded_request(
                lambda: self._backend.attach_urls(identity, job_id, urls)
            )
            if not response.ok:
                logger.error(
                    "Attaching %d file(s) to %s failed: %s",
                    len(urls), job_id, response.message or response.status_code,
                )
                return
            if "updatedJobs" in response.body and self._cache.identity == identity:
                self._cache.set(identity.email, parse_records(response.body["updatedJobs"]))
            logger.info("Attached %d file(s) to %s", len(urls), job_id)
        except ValidationError as e:
            logger.error("Attachment response for %s was malformed: %s", job_id, e)
        except Exception:
            logger.exception("Background attachment persist for %s failed", job_id)
