"""SQLite bootstrap for the key/value store.

:func:`open_db` creates the parent directory and the database file if needed,
switches the journal to WAL and creates the ``kv_store`` table.  Running it
against an existing file leaves its data alone.  The returned connection is
handed to :class:`~clipkeeper.storage.backend.SqliteBackend`, which closes it.

Typical usage::

    conn = await open_db("data/clipkeeper.db")
    backend = SqliteBackend(conn)
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("clipkeeper.db")

#: ``kv_store`` holds one JSON document per logical key.
#:
#: Column notes
#: ------------
#: key         Logical storage key (``items`` / ``history``).
#: value       Whole JSON-encoded value; replaced on every write.
#: updated_at  ISO-8601 UTC timestamp of the last write, set by the
#:             application rather than a trigger.
_DDL_KV_STORE = """\
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT     NOT NULL,
    value       TEXT     NOT NULL,
    updated_at  TEXT     NOT NULL,
    PRIMARY KEY (key)
)"""


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Connect to *path* (default :data:`DEFAULT_DB_PATH`) and ensure the schema.

    Raises:
        aiosqlite.OperationalError: The file cannot be opened or created.
    """
    db_path = Path(path or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite store at %s", db_path)

    conn: aiosqlite.Connection = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite store ready at %s", db_path)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the key/value table if it does not already exist.

    Idempotent and non-destructive; existing data is untouched.
    """
    await conn.execute(_DDL_KV_STORE)
    await conn.commit()
    logger.debug("Schema bootstrap complete (kv_store table verified)")


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Enable WAL journal mode; in-memory databases stay in ``memory`` mode."""
    async with conn.execute("PRAGMA journal_mode=WAL") as cursor:
        row = await cursor.fetchone()
    mode = row[0] if row else None
    if mode != "wal":
        logger.warning("SQLite kept journal_mode=%r instead of WAL", mode)
