"""Kanban board projection and dashboard stats over cached job records.

Pure functions of the record list: the board is re-derived from the session
cache on every render and never stored.
"""

import math

from pydantic import BaseModel, ConfigDict

from jobsync.core.schemas import JobRecord, JobStatus

COLUMN_LABELS: dict[JobStatus, str] = {
    JobStatus.SAVED: "Saved",
    JobStatus.APPLIED: "Applied",
    JobStatus.INTERVIEWING: "Interviewing",
    JobStatus.OFFER: "Offers",
    JobStatus.REJECTED: "Rejected",
    JobStatus.DELETED: "Deleted",
}

_RESPONDED = (JobStatus.INTERVIEWING, JobStatus.OFFER, JobStatus.REJECTED)


class BoardColumn(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: JobStatus
    label: str
    total: int
    page: int
    total_pages: int
    jobs: list[JobRecord]


class BoardStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    counts: dict[JobStatus, int]
    total_active: int
    response_rate: float


def matches_query(record: JobRecord, query: str) -> bool:
    """Case-insensitive match on title or company; blank queries match everything."""
    q = query.strip().lower()
    if not q:
        return True
    return q in record.job_title.lower() or q in record.company_name.lower()


def sort_recent_first(records: list[JobRecord]) -> list[JobRecord]:
    """Most recently updated first; records without a timestamp go last."""
    return sorted(records, key=lambda r: r.sort_key, reverse=True)


def build_column(
    records: list[JobRecord],
    status: JobStatus,
    query: str = "",
    page: int = 1,
    per_page: int = 30,
) -> BoardColumn:
    matching = sort_recent_first(
        [r for r in records if r.current_status is status and matches_query(r, query)]
    )
    total_pages = max(1, math.ceil(len(matching) / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return BoardColumn(
        status=status,
        label=COLUMN_LABELS[status],
        total=len(matching),
        page=page,
        total_pages=total_pages,
        jobs=matching[start:start + per_page],
    )


def build_board(
    records: list[JobRecord],
    query: str = "",
    pages: dict[JobStatus, int] | None = None,
    per_page: int = 30,
) -> list[BoardColumn]:
    """One column per status, in board order."""
    pages = pages or {}
    return [
        build_column(records, status, query, pages.get(status, 1), per_page)
        for status in JobStatus
    ]


def board_stats(records: list[JobRecord]) -> BoardStats:
    """Per-status counts, active total and the share of jobs that got a response."""
    counts = {status: 0 for status in JobStatus}
    for r in records:
        counts[r.current_status] += 1
    total_active = len(records) - counts[JobStatus.DELETED]
    responded = sum(counts[s] for s in _RESPONDED)
    rate = round(responded / len(records) * 100, 1) if records else 0.0
    return BoardStats(counts=counts, total_active=total_active, response_rate=rate)
