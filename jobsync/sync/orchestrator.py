"""Fetch orchestrator: serve from the session cache or hit the network.

Decision per mount:
  1. Activate the identity on the cache (an identity or role change drops
     the previous view).
  2. Fresh entry → serve it verbatim, no request.
  3. Missing or stale → one guarded fetch; success replaces the collection,
     failure leaves the last-known-good entry in place.
"""

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jobsync.backends.base import JobsBackend
from jobsync.core.schemas import Identity, JobRecord, parse_records
from jobsync.sync.auth_gate import AuthRefreshGate
from jobsync.sync.cache import SessionCache
from jobsync.sync.errors import JobsApiError, ReauthenticationRequired

logger = logging.getLogger(__name__)


class FetchResult(BaseModel):
    """What a mount or refresh produced."""

    model_config = ConfigDict(frozen=True)

    source: Literal["network", "cache", "none"]
    records: list[JobRecord] = Field(default_factory=list)
    error: str | None = None
    reauth_required: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.reauth_required


class JobFetchOrchestrator:
    """Decides whether a mount needs the network and performs the fetch.

    Usage::

        orchestrator = JobFetchOrchestrator(cache, gate, backend, max_age_ms=300_000)
        result = await orchestrator.mount(identity)
    """

    def __init__(
        self,
        cache: SessionCache,
        gate: AuthRefreshGate,
        backend: JobsBackend,
        max_age_ms: float,
    ) -> None:
        self._cache = cache
        self._gate = gate
        self._backend = backend
        self._max_age_ms = max_age_ms

    async def mount(self, identity: Identity) -> FetchResult:
        """Serve ``identity``'s jobs, fetching only when the cache is stale."""
        self._cache.init(identity)
        if not self._cache.is_stale(identity.email, self._max_age_ms):
            logger.debug("Cache fresh for %s; skipping fetch", identity.email)
            return FetchResult(source="cache", records=self._cache.records(identity.email))
        return await self._fetch(identity)

    async def refresh(self, identity: Identity | None = None) -> FetchResult:
        """Force a fetch for ``identity`` (default: the active one)."""
        if identity is not None:
            self._cache.init(identity)
        identity = self._cache.identity
        if identity is None:
            return FetchResult(source="none", error="No active identity")
        return await self._fetch(identity)

    async def _fetch(self, identity: Identity) -> FetchResult:
        email = identity.email
        self._cache.set_loading(email, True)
        try:
            response = await self._gate.guarded_request(
                lambda: self._backend.fetch_all(identity)
            )
        except ReauthenticationRequired:
            self._cache.teardown()
            return FetchResult(source="none", reauth_required=True)
        except JobsApiError as e:
            self._cache.set_loading(email, False)
            return self._failed(email, e.message)

        if not response.ok or "allJobs" not in response.body:
            self._cache.set_loading(email, False)
            return self._failed(
                email, response.message or f"Fetch failed with HTTP {response.status_code}",
            )

        try:
            records = parse_records(response.body["allJobs"])
        except ValidationError as e:
            self._cache.set_loading(email, False)
            return self._failed(email, f"Malformed job list: {e.error_count()} invalid field(s)")

        self._cache.set(email, records)
        logger.info("Fetched %d jobs for %s via %s", len(records), email, self._backend.backend_id)
        return FetchResult(source="network", records=records)

    def _failed(self, email: str, error: str) -> FetchResult:
        logger.warning("Job fetch for %s failed: %s", email, error)
        entry = self._cache.get(email)
        return FetchResult(
            source="cache" if entry else "none",
            records=list(entry.records) if entry else [],
            error=error,
        )
