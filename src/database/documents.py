"""Adhan Notifier — Document Store.

The opaque key-value load/save interface the engine's CachedLoader sits
on. Documents are whole JSON values stored in SQLite. Read faults are
reported as typed errors so the loader can decide how to degrade.

Also provides the one-shot import of the JSON files written by earlier
deployments (data/prayer_times.json, data/subscribers.json).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite

from src.database import queries
from src.database.db import Database
from src.database.models import StoreName
from src.utils.logger import get_logger

logger = get_logger(__name__)


class DocumentError(Exception):
    """Base class for document store faults."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Document '{name}': {message}")


class DocumentNotFoundError(DocumentError):
    """The document has never been written."""


class DocumentCorruptError(DocumentError):
    """The stored document cannot be parsed as JSON."""


class DocumentWriteError(DocumentError):
    """The document could not be persisted."""


class DocumentStore:
    """JSON document store backed by the SQLite documents table.

    Attributes:
        db: Active database instance.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def load(self, name: str) -> Any:
        """Load and parse a document.

        Args:
            name: Document name.

        Returns:
            The parsed JSON value.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            DocumentCorruptError: If the stored body is not valid JSON or
                the database cannot be read.
        """
        try:
            body = await queries.get_document(self.db, name)
        except aiosqlite.Error as e:
            raise DocumentCorruptError(name, f"read failed: {e}") from e

        if body is None:
            raise DocumentNotFoundError(name, "not found")

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise DocumentCorruptError(name, f"invalid JSON: {e}") from e

    async def save(self, name: str, value: Any) -> None:
        """Serialize and fully replace a document.

        Raises:
            DocumentWriteError: If serialization or the write fails.
        """
        try:
            body = json.dumps(value, ensure_ascii=False, indent=2)
            await queries.put_document(self.db, name, body)
        except (TypeError, ValueError, aiosqlite.Error) as e:
            raise DocumentWriteError(name, f"write failed: {e}") from e


async def import_legacy_files(store: DocumentStore, data_dir: str) -> int:
    """Copy legacy JSON files into the store where no document exists yet.

    Earlier deployments kept prayer_times.json and subscribers.json in a
    data directory. Files are imported verbatim (schema repair happens on
    first read). Existing documents are never overwritten.

    Args:
        store: Target document store.
        data_dir: Directory that may contain the legacy files.

    Returns:
        Number of documents imported.
    """
    if not data_dir:
        return 0

    base = Path(data_dir)
    imported = 0

    for name in (StoreName.SCHEDULE.value, StoreName.SUBSCRIBERS.value):
        path = base / f"{name}.json"
        if not path.is_file():
            continue
        if await queries.document_exists(store.db, name):
            logger.debug("Legacy file %s ignored, document already present", path)
            continue

        try:
            value = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable legacy file %s: %s", path, e)
            continue

        await store.save(name, value)
        imported += 1
        logger.info("Imported legacy %s from %s", name, path)

    return imported
