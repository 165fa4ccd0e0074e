"""Tests for the SQLite snapshot store."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from jobsync.core.db import SnapshotStore, init_db
from jobsync.core.schemas import JobRecord, JobStatus, Role, SessionCacheEntry


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SnapshotStore]:
    s = SnapshotStore.open(tmp_path / "sub" / "cache.db")
    yield s
    s.close()


def _entry(email: str = "ana@example.com", view: Role = Role.STANDARD) -> SessionCacheEntry:
    return SessionCacheEntry(
        owner_email=email,
        view=view,
        records=[
            JobRecord(job_id="1", job_title="Engineer", company_name="Acme",
                      current_status=JobStatus.APPLIED),
        ],
        fetched_at=1_760_000_000.0,
    )


class TestInitDb:
    def test_creates_table(self, tmp_path: Path) -> None:
        conn = init_db(tmp_path / "x.db")
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert "cache_snapshots" in tables


class TestSnapshotStore:
    def test_save_and_load(self, store: SnapshotStore) -> None:
        store.save(_entry())
        loaded = store.load("ana@example.com")
        assert loaded is not None
        assert loaded.view is Role.STANDARD
        assert loaded.fetched_at == 1_760_000_000.0
        assert [r.job_id for r in loaded.records] == ["1"]
        assert loaded.records[0].current_status is JobStatus.APPLIED

    def test_save_replaces(self, store: SnapshotStore) -> None:
        store.save(_entry())
        store.save(_entry(view=Role.OPERATIONS).model_copy(update={"records": []}))
        loaded = store.load("ana@example.com")
        assert loaded is not None
        assert loaded.view is Role.OPERATIONS
        assert loaded.records == []

    def test_status_attribution_survives(self, store: SnapshotStore) -> None:
        record = JobRecord.from_wire({"jobID": "1", "currentStatus": "offer by Priya"})
        store.save(_entry().model_copy(update={"records": [record]}))
        loaded = store.load("ana@example.com")
        assert loaded is not None
        assert loaded.records[0].current_status is JobStatus.OFFER
        assert loaded.records[0].status_actor == "Priya"

    def test_load_missing(self, store: SnapshotStore) -> None:
        assert store.load("nobody@example.com") is None

    def test_unreadable_snapshot_discarded(self, store: SnapshotStore) -> None:
        store.save(_entry())
        store._conn.execute(
            "UPDATE cache_snapshots SET records_json = 'not json' WHERE owner_email = ?",
            ("ana@example.com",),
        )
        assert store.load("ana@example.com") is None
        assert store.owners() == []

    def test_delete_others(self, store: SnapshotStore) -> None:
        store.save(_entry("ana@example.com"))
        store.save(_entry("bo@example.com"))
        store.save(_entry("cy@example.com"))
        assert store.delete_others("bo@example.com") == 2
        assert store.owners() == ["bo@example.com"]

    def test_clear(self, store: SnapshotStore) -> None:
        store.save(_entry("ana@example.com"))
        store.save(_entry("bo@example.com"))
        store.clear()
        assert store.owners() == []
