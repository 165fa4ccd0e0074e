"""Session cache: the single in-memory source of truth for job records.

Lifecycle::

    cache = SessionCache(snapshots=SnapshotStore.open("data/job_cache.db"))
    cache.init(identity)        # restores a snapshot for this identity, if any
    if cache.is_stale(identity.email, max_age_ms=300_000):
        ...                     # fetch, then cache.set(...)
    cache.teardown()            # logout: drops everything, including snapshots

Reads never raise. Network responses always replace a collection wholesale
through ``set``; local optimistic edits go through ``mutate``.
"""

import logging
import time
from collections.abc import Callable

from jobsync.core.db import SnapshotStore
from jobsync.core.schemas import Identity, JobRecord, Role, SessionCacheEntry

logger = logging.getLogger(__name__)

Updater = Callable[[list[JobRecord]], list[JobRecord]]


class SessionCache:
    """Identity-scoped store of job collections with staleness detection."""

    def __init__(
        self,
        snapshots: SnapshotStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._snapshots = snapshots
        self._clock = clock
        self._entries: dict[str, SessionCacheEntry] = {}
        self._loading: set[str] = set()
        self._identity: Identity | None = None

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def init(self, identity: Identity) -> None:
        """Activate ``identity``. Entries for any other identity are dropped."""
        if self._identity == identity:
            return
        if self._identity is not None:
            logger.info(
                "Identity changed from %s (%s) to %s (%s); invalidating cache",
                self._identity.email, self._identity.role.value,
                identity.email, identity.role.value,
            )
        self._entries.clear()
        self._loading.clear()
        self._identity = identity

        if self._snapshots is None:
            return
        dropped = self._snapshots.delete_others(identity.email)
        if dropped:
            logger.debug("Dropped %d snapshot(s) of other identities", dropped)
        entry = self._snapshots.load(identity.email)
        if entry is not None and entry.view == identity.role:
            self._entries[identity.email] = entry
            logger.debug(
                "Restored %d records for %s from snapshot", len(entry.records), identity.email,
            )

    def teardown(self) -> None:
        """Forget the active identity and every cached collection."""
        self._entries.clear()
        self._loading.clear()
        self._identity = None
        if self._snapshots is not None:
            self._snapshots.clear()

    def get(self, owner_email: str) -> SessionCacheEntry | None:
        return self._entries.get(owner_email)

    def records(self, owner_email: str) -> list[JobRecord]:
        entry = self._entries.get(owner_email)
        return list(entry.records) if entry else []

    def find(self, owner_email: str, job_id: str) -> JobRecord | None:
        entry = self._entries.get(owner_email)
        if entry is None:
            return None
        for record in entry.records:
            if record.job_id == job_id:
                return record
        return None

    def set(self, owner_email: str, records: list[JobRecord]) -> SessionCacheEntry:
        """Replace the whole collection for ``owner_email`` and stamp it fresh."""
        previous = self._entries.get(owner_email)
        if self._identity is not None:
            view = self._identity.role
        else:
            view = previous.view if previous else Role.STANDARD
        entry = SessionCacheEntry(
            owner_email=owner_email,
            view=view,
            records=list(records),
            fetched_at=self._clock(),
        )
        self._entries[owner_email] = entry
        self._loading.discard(owner_email)
        self._persist(entry)
        logger.debug("Cache set for %s: %d records", owner_email, len(entry.records))
        return entry

    def mutate(self, owner_email: str, updater: Updater) -> SessionCacheEntry:
        """Apply a local transformation without touching the network.

        With nothing cached yet, the updater starts from an empty collection
        whose ``fetched_at`` is 0, so the entry still counts as stale.
        """
        entry = self._entries.get(owner_email)
        if entry is None:
            view = self._identity.role if self._identity else Role.STANDARD
            entry = SessionCacheEntry(owner_email=owner_email, view=view, fetched_at=0.0)
        updated = entry.model_copy(update={"records": list(updater(list(entry.records)))})
        self._entries[owner_email] = updated
        self._persist(updated)
        return updated

    def is_stale(self, owner_email: str, max_age_ms: float) -> bool:
        """True if absent, older than ``max_age_ms``, or not the active identity's view."""
        entry = self._entries.get(owner_email)
        if entry is None:
            return True
        identity = self._identity
        if identity is None or identity.email != owner_email or identity.role != entry.view:
            return True
        age_ms = (self._clock() - entry.fetched_at) * 1000
        return age_ms > max_age_ms

    def set_loading(self, owner_email: str, loading: bool) -> None:
        if loading:
            self._loading.add(owner_email)
        else:
            self._loading.discard(owner_email)
        entry = self._entries.get(owner_email)
        if entry is not None and entry.is_loading != loading:
            self._entries[owner_email] = entry.model_copy(update={"is_loading": loading})

    def is_loading(self, owner_email: str) -> bool:
        return owner_email in self._loading

    def _persist(self, entry: SessionCacheEntry) -> None:
        if self._snapshots is not None:
            self._snapshots.save(entry)
