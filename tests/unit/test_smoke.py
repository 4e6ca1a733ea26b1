"""Harness smoke tests.

Nothing here exercises item behaviour.  These checks fail fast when the test
environment itself is broken: a layer package no longer imports, logging
cannot be configured, the exception tree has drifted, or async tests are not
being collected in ``asyncio_mode = "auto"``.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from clipkeeper.core import (
    ClipboardError,
    ClipkeeperError,
    ConfigError,
    EmptyExportError,
    ExportError,
    FetchError,
    ItemAlreadyExistsError,
    ItemValidationError,
    JsonFormatter,
    StorageError,
    StorageWriteError,
    TransientFetchError,
    configure_logging,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_layer_packages_import() -> None:
    """Every layer package imports without side effects."""
    import clipkeeper.engine  # noqa: F401, PLC0415
    import clipkeeper.fetch  # noqa: F401, PLC0415
    import clipkeeper.runner  # noqa: F401, PLC0415
    import clipkeeper.storage  # noqa: F401, PLC0415

    assert JsonFormatter is not None


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    """All custom exceptions are subclasses of ``ClipkeeperError``."""
    for exc_class in (
        ConfigError,
        ItemValidationError,
        StorageError,
        StorageWriteError,
        ItemAlreadyExistsError,
        FetchError,
        TransientFetchError,
        ExportError,
        EmptyExportError,
        ClipboardError,
    ):
        assert issubclass(exc_class, ClipkeeperError), exc_class.__name__


def test_exception_hierarchy_layers() -> None:
    assert issubclass(StorageWriteError, StorageError)
    assert issubclass(ItemAlreadyExistsError, StorageError)
    assert issubclass(TransientFetchError, FetchError)
    assert issubclass(EmptyExportError, ExportError)
    assert issubclass(ClipboardError, ExportError)


def test_exceptions_carry_context() -> None:
    assert ItemAlreadyExistsError("123").item_id == "123"
    assert ItemValidationError("bad", "9").item_id == "9"
    assert StorageWriteError("items", "disk full").key == "items"

    exc = FetchError("https://booth.pm/ja/items/1.json", "HTTP 404")
    assert exc.url.endswith("1.json")
    assert exc.reason == "HTTP 404"
    assert "HTTP 404" in str(exc)

    assert EmptyExportError("page 42").scope == "page 42"


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    """Collected and awaited without an explicit asyncio marker."""
    await asyncio.sleep(0)
    assert True
