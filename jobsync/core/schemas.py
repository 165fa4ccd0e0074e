"""Core data models for the job sync engine."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobsync.core.timestamps import parse_timestamp, utcnow


class JobStatus(str, Enum):
    """Kanban column a job record sits in."""

    SAVED = "saved"
    APPLIED = "applied"
    INTERVIEWING = "interviewing"
    OFFER = "offer"
    REJECTED = "rejected"
    DELETED = "deleted"

    @classmethod
    def parse(cls, value: str) -> "JobStatus":
        """Map a wire status (``"applied by user"``) onto its column."""
        head = value.strip().lower().split(" by ", 1)[0].strip()
        try:
            return cls(head)
        except ValueError:
            msg = f"Unknown job status: {value!r}"
            raise ValueError(msg) from None


ACTIVE_PIPELINE = frozenset(
    {JobStatus.APPLIED, JobStatus.INTERVIEWING, JobStatus.OFFER, JobStatus.REJECTED}
)


def status_label(status: JobStatus, actor: str) -> str:
    """Wire form of a status with its attribution, e.g. ``"applied by user"``."""
    return f"{status.value} by {actor}"


class Role(str, Enum):
    STANDARD = "standard"
    OPERATIONS = "operations"


class Identity(BaseModel):
    """Who the tracker is currently acting for."""

    model_config = ConfigDict(frozen=True)

    email: str
    role: Role = Role.STANDARD
    name: str = ""

    @field_validator("email")
    @classmethod
    def email_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "email must not be empty"
            raise ValueError(msg)
        return v.strip()

    @property
    def status_actor(self) -> str:
        """Who status changes made by this identity are attributed to."""
        if self.role is Role.OPERATIONS:
            return self.name or "operations"
        return "user"

    def user_details(self) -> dict[str, str]:
        """The ``userDetails`` object the server expects in request bodies."""
        details = {"email": self.email}
        if self.name:
            details["name"] = self.name
        return details


class JobRecord(BaseModel):
    """A single tracked job application.

    Frozen: edits produce a new record via ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    job_id: str = Field(alias="jobID")
    job_title: str = Field(default="", alias="jobTitle")
    company_name: str = Field(default="", alias="companyName")
    job_description: str = Field(default="", alias="jobDescription")
    joblink: str = ""
    current_status: JobStatus = Field(default=JobStatus.SAVED, alias="currentStatus")
    status_actor: str = Field(default="", alias="statusActor")
    date_added: str = Field(default="", alias="dateAdded")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    attachments: list[str] = Field(default_factory=list)
    user_id: str = Field(default="", alias="userID")

    @field_validator("job_id", mode="before")
    @classmethod
    def job_id_as_string(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            msg = "jobID must not be empty"
            raise ValueError(msg)
        return str(v)

    @field_validator("current_status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return JobStatus.parse(v)
        return v

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def lenient_timestamp(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("attachments", mode="before")
    @classmethod
    def attachments_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        return [str(u) for u in v if u]

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "JobRecord":
        """Build a record from a server dict, keeping the status attribution."""
        status = data.get("currentStatus")
        actor = ""
        if isinstance(status, str) and " by " in status:
            actor = status.split(" by ", 1)[1].strip()
        return cls.model_validate({**data, "statusActor": actor})

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the server's camelCase field names.

        The status carries its attribution (``"offer by Priya"``) when one is known.
        """
        data = self.model_dump(mode="json", by_alias=True, exclude={"status_actor"})
        if self.status_actor:
            data["currentStatus"] = status_label(self.current_status, self.status_actor)
        return data

    @property
    def attachments_newest_first(self) -> list[str]:
        return list(reversed(self.attachments))

    @property
    def sort_key(self) -> float:
        """Most recently touched first when sorted descending; unknown sorts last."""
        return self.updated_at.timestamp() if self.updated_at else float("-inf")

    def touch(self, now: datetime | None = None, **changes: Any) -> "JobRecord":
        """Copy with ``changes`` applied and ``updated_at`` never moving backwards."""
        now = now or utcnow()
        if self.updated_at is not None and self.updated_at > now:
            now = self.updated_at
        return self.model_copy(update={**changes, "updated_at": now})


def parse_records(raw: Any) -> list[JobRecord]:
    """Parse a server job list, rejecting the whole list if any entry is invalid."""
    if not raw:
        return []
    return [JobRecord.from_wire(item) for item in raw]


class JobDraft(BaseModel):
    """User input for a new job, before it has an identity.

    ``status`` is what the form showed; a created job always starts in saved.
    """

    job_title: str
    company_name: str
    job_description: str = ""
    joblink: str = ""
    date_added: str = ""
    status: JobStatus = JobStatus.SAVED
    pasted_files: list[Path] = Field(default_factory=list)

    @field_validator("job_title", "company_name")
    @classmethod
    def required_text(cls, v: str) -> str:
        if not v.strip():
            msg = "Job Title and Company Name are required."
            raise ValueError(msg)
        return v.strip()


class SessionCacheEntry(BaseModel):
    """The cached job collection for one identity."""

    owner_email: str
    view: Role = Role.STANDARD
    records: list[JobRecord] = Field(default_factory=list)
    fetched_at: float
    is_loading: bool = False


class PendingTransition(BaseModel):
    """A gated status change waiting for a resume or attachment."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    target_status: JobStatus
