"""Configuration models and YAML loader for the job sync engine."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DELETION_CODE_ENV = "JOBSYNC_DELETION_CODE"


class ApiConfig(BaseModel):
    """Server of record connection settings."""

    base_url: str = "http://localhost:8086"
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.strip():
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v.strip().rstrip("/")


class CacheConfig(BaseModel):
    """Session cache staleness and snapshot settings."""

    max_age_ms: int = Field(default=300_000, ge=0)
    snapshot_path: str | None = "data/job_cache.db"


class CreationConfig(BaseModel):
    """Optimistic creation timing."""

    optimistic_close_seconds: float = Field(default=2.5, gt=0)


class BoardConfig(BaseModel):
    """Kanban board presentation."""

    jobs_per_page: int = Field(default=30, ge=1, le=500)


class DeletionConfig(BaseModel):
    """Shared-secret prompt guarding deletions.

    This is a speed-bump against accidental deletes, not an access control.
    """

    confirmation_code: str = ""

    def resolved_code(self) -> str:
        """The env override wins over the configured code."""
        return os.environ.get(DELETION_CODE_ENV, self.confirmation_code)


class StorageConfig(BaseModel):
    """Cloudinary unsigned upload settings."""

    cloud_name: str = ""
    upload_preset: str = ""
    folder: str = "flashfirejobs/attachments"
    timeout_seconds: float = Field(default=60.0, gt=0)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    creation: CreationConfig = Field(default_factory=CreationConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    deletion: DeletionConfig = Field(default_factory=DeletionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
