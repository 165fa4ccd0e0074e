"""Tracker session: wires cache, gate, backend and engine components for one identity.

Hard rules:
  - One httpx client per session, closed on exit
  - Backend chosen once from the identity's role
  - Re-authentication failure tears the cache down
"""

import logging
from types import TracebackType

import httpx

from jobsync.backends import get_backend
from jobsync.core.config import Settings
from jobsync.core.db import SnapshotStore
from jobsync.core.schemas import Identity
from jobsync.storage.uploader import AttachmentUploader, CloudinaryUploader
from jobsync.sync.artifacts import ArtifactIndex
from jobsync.sync.auth_gate import AuthRefreshGate, CredentialProvider
from jobsync.sync.background import BackgroundAttachments
from jobsync.sync.cache import SessionCache
from jobsync.sync.creation import CreationProtocol
from jobsync.sync.editor import JobEditor
from jobsync.sync.orchestrator import FetchResult, JobFetchOrchestrator
from jobsync.sync.scheduler import LoopScheduler, Scheduler
from jobsync.sync.state_machine import AttachmentSurface, StatusStateMachine

logger = logging.getLogger(__name__)


class TrackerSession:
    """Async context manager that owns the HTTP client and the engine objects.

    Usage::

        async with TrackerSession(settings, identity, credentials) as session:
            result = await session.mount()
            await session.state_machine.drop(job_id, JobStatus.APPLIED)
    """

    def __init__(
        self,
        settings: Settings,
        identity: Identity,
        credentials: CredentialProvider,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        uploader: AttachmentUploader | None = None,
        surface: AttachmentSurface | None = None,
        artifacts: ArtifactIndex | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._settings = settings
        self.identity = identity
        self._credentials = credentials
        self._transport = transport
        self._uploader = uploader
        self._surface = surface
        self._artifacts = artifacts or ArtifactIndex()
        self._scheduler = scheduler or LoopScheduler()
        self._client: httpx.AsyncClient | None = None
        self._snapshots: SnapshotStore | None = None
        self._orchestrator: JobFetchOrchestrator | None = None
        self._state_machine: StatusStateMachine | None = None
        self._creation: CreationProtocol | None = None
        self._editor: JobEditor | None = None
        self.cache: SessionCache | None = None

    @property
    def state_machine(self) -> StatusStateMachine:
        if self._state_machine is None:
            msg = "TrackerSession not entered; use 'async with'"
            raise RuntimeError(msg)
        return self._state_machine

    @property
    def creation(self) -> CreationProtocol:
        if self._creation is None:
            msg = "TrackerSession not entered; use 'async with'"
            raise RuntimeError(msg)
        return self._creation

    @property
    def editor(self) -> JobEditor:
        if self._editor is None:
            msg = "TrackerSession not entered; use 'async with'"
            raise RuntimeError(msg)
        return self._editor

    async def mount(self) -> FetchResult:
        if self._orchestrator is None:
            msg = "TrackerSession not entered; use 'async with'"
            raise RuntimeError(msg)
        return await self._orchestrator.mount(self.identity)

    async def refresh(self) -> FetchResult:
        if self._orchestrator is None:
            msg = "TrackerSession not entered; use 'async with'"
            raise RuntimeError(msg)
        return await self._orchestrator.refresh(self.identity)

    async def __aenter__(self) -> "TrackerSession":
        settings = self._settings
        self._client = httpx.AsyncClient(
            base_url=settings.api.base_url,
            timeout=settings.api.timeout_seconds,
            transport=self._transport,
        )
        if settings.cache.snapshot_path:
            self._snapshots = SnapshotStore.open(settings.cache.snapshot_path)
        cache = SessionCache(snapshots=self._snapshots)
        self.cache = cache

        gate = AuthRefreshGate(self._credentials, on_reauth_required=cache.teardown)
        backend = get_backend(self.identity.role, self._client, self._credentials)
        uploader = self._uploader or CloudinaryUploader(self._client, settings.storage)
        background = BackgroundAttachments(cache, gate, backend, uploader)

        self._orchestrator = JobFetchOrchestrator(
            cache, gate, backend, max_age_ms=settings.cache.max_age_ms,
        )
        self._state_machine = StatusStateMachine(
            cache, gate, backend, self._artifacts,
            surface=self._surface,
            deletion_code=settings.deletion.resolved_code(),
        )
        self._creation = CreationProtocol(
            cache, gate, backend, background, self._scheduler,
            close_after_seconds=settings.creation.optimistic_close_seconds,
        )
        self._editor = JobEditor(cache, gate, backend, background)
        logger.debug("Tracker session opened for %s via %s", self.identity.email, backend.backend_id)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._creation is not None:
            self._creation.cancel()
            await self._creation.drain()
        if self._client is not None:
            await self._client.aclose()
        if self._snapshots is not None:
            self._snapshots.close()
