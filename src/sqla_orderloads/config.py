"""Runtime settings loaded from ``ORDERLOADS_*`` environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Final

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core import DEFAULT_LIMIT, DEFAULT_OFFSET


DEFAULT_BATCH_SIZE: Final[int] = 100


class FetchSettings(BaseSettings):
    """Tunables shared by every loader."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERLOADS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///:memory:"
    echo_sql: bool = False

    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    default_offset: int = Field(default=DEFAULT_OFFSET, ge=0)
    default_limit: int = Field(default=DEFAULT_LIMIT, ge=1)


@lru_cache
def get_settings() -> FetchSettings:
    """Get cached settings instance."""
    return FetchSettings()
