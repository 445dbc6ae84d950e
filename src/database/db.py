"""Adhan Notifier — SQLite Connection Manager.

One long-lived aiosqlite connection to the document database. The
database holds whole JSON documents (prayer times, subscribers) keyed
by name; documents.py builds the load/save interface on top.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Schema Definitions ────────────────────────────────────
SCHEMA_SQL = """
-- ═══ Documents Table ═══
-- One row per stored JSON document, replaced in full on every save.
CREATE TABLE IF NOT EXISTS documents (
    name        TEXT    PRIMARY KEY,
    body        TEXT    NOT NULL,
    updated_at  DATETIME DEFAULT (datetime('now', 'localtime'))
);
"""

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


class Database:
    """Owner of the document database connection.

    Usable as an async context manager:

        async with Database("data/adhan_notifier.db") as db:
            store = DocumentStore(db)

    Attributes:
        db_path: Resolved absolute path to the SQLite file.
    """

    def __init__(self, db_path: str) -> None:
        """Remember the path; nothing is opened until initialize().

        Args:
            db_path: Relative or absolute path. Missing parent
                directories are created on initialize().
        """
        self.db_path = Path(db_path).resolve()
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection, apply pragmas and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Opening document database: %s", self.db_path)
        self._connection = await aiosqlite.connect(str(self.db_path))
        self._connection.row_factory = aiosqlite.Row

        for pragma in _PRAGMAS:
            await self._connection.execute(pragma)
        await self._connection.executescript(SCHEMA_SQL)
        await self._connection.commit()

        logger.info("Document database ready")

    async def get_connection(self) -> aiosqlite.Connection:
        """The open connection, opening it on first use."""
        if self._connection is None:
            await self.initialize()
        return self._connection

    async def close(self) -> None:
        """Close the connection. Does nothing if it is not open."""
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("Document database closed")

    async def __aenter__(self) -> "Database":
        await self.initialize()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
