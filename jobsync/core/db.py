"""SQLite persistence for session cache snapshots.

A snapshot survives a process restart so a fresh cache is not forced to
refetch on every launch. Snapshots are keyed by owner email; the view (role)
is stored with them so an operations snapshot never masquerades as the
user's own.
"""

import json
import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from jobsync.core.schemas import Role, SessionCacheEntry, parse_records

logger = logging.getLogger(__name__)

_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS cache_snapshots (
    owner_email     TEXT    PRIMARY KEY,
    view            TEXT    NOT NULL,
    records_json    TEXT    NOT NULL,
    fetched_at      REAL    NOT NULL
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_SNAPSHOTS_TABLE)
    conn.commit()
    return conn


class SnapshotStore:
    """Reads and writes cache snapshots in SQLite."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: str | Path) -> "SnapshotStore":
        return cls(init_db(path))

    def save(self, entry: SessionCacheEntry) -> None:
        """Insert or replace the snapshot for ``entry.owner_email``."""
        records_json = json.dumps([r.to_wire() for r in entry.records])
        self._conn.execute(
            """
            INSERT INTO cache_snapshots (owner_email, view, records_json, fetched_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(owner_email)
            DO UPDATE SET
                view = excluded.view,
                records_json = excluded.records_json,
                fetched_at = excluded.fetched_at
            """,
            (entry.owner_email, entry.view.value, records_json, entry.fetched_at),
        )
        self._conn.commit()

    def load(self, owner_email: str) -> SessionCacheEntry | None:
        """Return the stored snapshot, or None if absent or unreadable."""
        row = self._conn.execute(
            "SELECT view, records_json, fetched_at FROM cache_snapshots WHERE owner_email = ?",
            (owner_email,),
        ).fetchone()
        if row is None:
            return None
        try:
            records = parse_records(json.loads(row["records_json"]))
            view = Role(row["view"])
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.warning("Discarding unreadable snapshot for %s: %s", owner_email, e)
            self.delete(owner_email)
            return None
        return SessionCacheEntry(
            owner_email=owner_email,
            view=view,
            records=records,
            fetched_at=row["fetched_at"],
        )

    def delete(self, owner_email: str) -> None:
        self._conn.execute("DELETE FROM cache_snapshots WHERE owner_email = ?", (owner_email,))
        self._conn.commit()

    def delete_others(self, owner_email: str) -> int:
        """Drop every snapshot not owned by ``owner_email``. Returns rows removed."""
        cursor = self._conn.execute(
            "DELETE FROM cache_snapshots WHERE owner_email != ?", (owner_email,)
        )
        self._conn.commit()
        return cursor.rowcount

    def clear(self) -> None:
        self._conn.execute("DELETE FROM cache_snapshots")
        self._conn.commit()

    def owners(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT owner_email FROM cache_snapshots ORDER BY owner_email"
        ).fetchall()
        return [row["owner_email"] for row in rows]

    def close(self) -> None:
        self._conn.close()
