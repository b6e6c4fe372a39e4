"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="Stockkeeper",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./stockkeeper.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    image_dir: Path = Field(
        default=Path("./images"),
        description="Private directory that holds item images.",
    )
    scratch_dir: Path | None = Field(
        default=None,
        description="Parent directory for import scratch areas; system temp when unset.",
    )
    archive_dir: Path = Field(
        default=Path("./archives"),
        description="Directory the HTTP API reads archives from and writes exports to.",
    )
    export_include_deleted: bool = Field(
        default=False,
        description="Whether exports include items sitting in the recycle bin.",
    )
    log_level: str = Field(default="INFO")
    log_json: bool = Field(
        default=False,
        description="Emit one JSON object per log line instead of plain text.",
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
