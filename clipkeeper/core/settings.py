"""Runtime configuration for clipkeeper.

Every field maps to an upper-case environment variable of the same name
(``fetch_max_concurrent`` ↔ ``FETCH_MAX_CONCURRENT``).  A ``.env`` file in the
working directory is read as well; real environment variables win over it.
Durations are in seconds.

Typical usage::

    settings = Settings()
    dispatcher = FetchDispatcher(
        max_concurrent=settings.fetch_max_concurrent,
        delay_between_requests=settings.fetch_delay_between_requests,
    )
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from clipkeeper.core.ids import DEFAULT_ITEM_BASE_URL
from clipkeeper.core.logging_config import FORMATS, LEVELS

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Validated settings; environment first, then ``.env``, then defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    store_path: str = Field(
        default="data/clipkeeper.db",
        description="Path to the SQLite key/value store file.",
    )

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    item_base_url: str = Field(
        default=DEFAULT_ITEM_BASE_URL,
        description="Canonical prefix for item page URLs.",
    )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    fetch_max_concurrent: int = Field(
        default=3,
        ge=1,
        description="Maximum metadata requests in flight at once.",
    )
    fetch_delay_between_requests: float = Field(
        default=0.5,
        ge=0.0,
        description="Seconds a dispatcher slot stays busy after its task settles.",
    )
    fetch_item_delay: float = Field(
        default=0.3,
        ge=0.0,
        description="Seconds between successive per-item attempts in one batch.",
    )
    fetch_fallback_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds before the privileged fallback request is abandoned.",
    )
    fetch_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts made by the fallback HTTP client.",
    )

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    rename_debounce: float = Field(
        default=0.5,
        ge=0.0,
        description="Quiet period before a rename is written to the store.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("item_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"item_base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        if v.upper() not in LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LEVELS)}, got {v!r}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        if v.lower() not in FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(FORMATS)}, got {v!r}")
        return v.lower()

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def store_path_resolved(self) -> Path:
        """Return the store path as a resolved :class:`~pathlib.Path`."""
        return Path(self.store_path).resolve()
