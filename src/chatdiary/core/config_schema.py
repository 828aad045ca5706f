"""Pydantic models for config validation.

Opt-in schema validation for ``Config.config_data``.  Call
``Config.validated()`` to obtain a typed, validated ``ChatDiaryConfig``
instance.  Dict-based access continues to work unchanged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PathsConfig(BaseModel):
    """File-system paths used by the application."""

    data_dir: Path
    db_path: Path | None = None
    flat_store_dir: Path | None = None
    backup_dir: Path | None = None
    log_dir: Path | None = None

    @field_validator("data_dir", "db_path", "flat_store_dir", "backup_dir", "log_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    def resolved_db_path(self) -> Path:
        return self.db_path or self.data_dir / "chatdiary.db"

    def resolved_flat_store_dir(self) -> Path:
        return self.flat_store_dir or self.data_dir / "local"

    def resolved_backup_dir(self) -> Path:
        return self.backup_dir or self.data_dir / "backups"


class StorageConfig(BaseModel):
    """Local persistence limits."""

    quota_bytes: int | None = Field(default=None, gt=0)


class SyncConfig(BaseModel):
    """Auto-sync cadence and HTTP timeout."""

    interval_minutes: float = Field(default=30, gt=0)
    min_age_minutes: float = Field(default=60, ge=0)
    timeout: int = Field(default=30, gt=0)


class GistConfig(BaseModel):
    api_base: str = "https://api.github.com"


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    file: str | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class ChatDiaryConfig(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so deployments can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    paths: PathsConfig = PathsConfig(data_dir=Path("~/.chatdiary-data"))
    storage: StorageConfig = StorageConfig()
    sync: SyncConfig = SyncConfig()
    gist: GistConfig = GistConfig()
    logging: LoggingConfig = LoggingConfig()
