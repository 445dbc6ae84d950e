"""Adhan Notifier — Database Query Operations.

Async read/write operations on the documents table. Every function:
  - Uses parameterized queries (? placeholders, never f-strings for SQL)
  - Handles connection via the Database instance
  - Commits after writes
  - Logs operations at DEBUG level
"""

from __future__ import annotations

from typing import Optional

from src.database.db import Database
from src.utils.logger import get_logger

logger = get_logger(__name__)


async def get_document(db: Database, name: str) -> Optional[str]:
    """Fetch the raw JSON body of a document.

    Args:
        db: Active database instance.
        name: Document name.

    Returns:
        The stored text, or None if no such document exists.
    """
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT body FROM documents WHERE name = ? LIMIT 1",
        (name,),
    )
    row = await cursor.fetchone()
    logger.debug("get_document(%s) found=%s", name, row is not None)
    return row["body"] if row is not None else None


async def put_document(db: Database, name: str, body: str) -> None:
    """Insert or fully replace a document.

    Args:
        db: Active database instance.
        name: Document name.
        body: Serialized JSON text.
    """
    conn = await db.get_connection()
    await conn.execute(
        """
        INSERT INTO documents (name, body, updated_at)
        VALUES (?, ?, datetime('now', 'localtime'))
        ON CONFLICT(name) DO UPDATE SET
            body = excluded.body,
            updated_at = excluded.updated_at
        """,
        (name, body),
    )
    await conn.commit()
    logger.debug("put_document(%s) wrote %d bytes", name, len(body))


async def document_exists(db: Database, name: str) -> bool:
    """Check whether a document has ever been saved."""
    conn = await db.get_connection()
    cursor = await conn.execute(
        "SELECT 1 FROM documents WHERE name = ? LIMIT 1",
        (name,),
    )
    row = await cursor.fetchone()
    return row is not None
