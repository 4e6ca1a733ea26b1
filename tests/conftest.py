"""Fixtures shared by every clipkeeper test module."""

from __future__ import annotations

import os

import pytest
from pydantic_settings import SettingsConfigDict

from clipkeeper.core import configure_logging
from clipkeeper.core.settings import Settings
from clipkeeper.storage.backend import MemoryBackend
from clipkeeper.storage.repository import ItemStore


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Reset root logging to DEBUG text output before each test.

    ``force=True`` ensures the configuration is applied even when pytest's
    own ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every Clipkeeper-related env var for the duration of a test.

    Also disables pydantic-settings ``.env`` file loading so that values in a
    local ``.env`` file do not leak into Settings isolation tests.
    """
    prefixes = (
        "STORE_",
        "ITEM_",
        "FETCH_",
        "RENAME_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture()
def backend() -> MemoryBackend:
    """Return an empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture()
def store(backend: MemoryBackend) -> ItemStore:
    """Return an :class:`ItemStore` over the ``backend`` fixture."""
    return ItemStore(backend)

