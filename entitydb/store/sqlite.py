"""
SQLite document store for EntityDB.

This module keeps every collection of documents in a single SQLite file:
- One row per document, body stored as JSON
- Insertion order tracked by a per-collection sequence number
- Filters and sorts evaluated by the shared query functions

Invariants:
    - (collection, doc_id) is unique
    - Replacing a document keeps its original sequence number
    - All writes run in a single transaction
    - Datetimes round-trip exactly through a {"$date": <isoformat>} tag
    - Stored keys starting with "$" gain one extra "$", so user data can
      never be read back as a tag

How to change safely:
    - Table changes must be backward compatible with existing files
    - Keep query semantics in query.py
    - Use transactions for all write operations

Table schema:
    documents:
        - collection TEXT
        - doc_id TEXT
        - seq INTEGER (insertion order within the collection)
        - body_json TEXT
        - PRIMARY KEY (collection, doc_id)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from ..errors import StoreError
from .base import Cursor, Document, Filter, new_document_id
from .query import matches

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    """Prepare a value for JSON, tagging datetimes and escaping "$" keys."""
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, dict):
        return {
            (f"${key}" if isinstance(key, str) and key.startswith("$") else key): _encode(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(obj: dict) -> Any:
    if len(obj) == 1 and "$date" in obj:
        return datetime.fromisoformat(obj["$date"])
    return {(key[1:] if key.startswith("$$") else key): item for key, item in obj.items()}


class SqliteCollection:
    """A named collection stored in a SqliteDocumentStore."""

    def __init__(self, store: SqliteDocumentStore, name: str) -> None:
        self.name = name
        self._store = store

    async def _all(self) -> List[Document]:
        with self._store._get_connection() as conn:
            cursor = conn.execute(
                "SELECT body_json FROM documents WHERE collection = ? ORDER BY seq",
                (self.name,),
            )
            return [json.loads(row["body_json"], object_hook=_decode) for row in cursor]

    async def count(self, criteria: Optional[Filter] = None) -> int:
        return sum(1 for doc in await self._all() if matches(doc, criteria))

    async def find_one(self, criteria: Optional[Filter] = None) -> Optional[Document]:
        for doc in await self._all():
            if matches(doc, criteria):
                return doc
        return None

    def find(self, criteria: Optional[Filter] = None) -> Cursor:
        return Cursor(self._all, criteria)

    async def save(self, doc: Document) -> Document:
        stored = dict(doc)
        if not stored.get("_id"):
            stored["_id"] = new_document_id()

        try:
            body = json.dumps(_encode(stored))
        except TypeError as e:
            raise StoreError(f"Document is not serializable: {e}")

        async with self._store._lock:
            with self._store._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT seq FROM documents WHERE collection = ? AND doc_id = ?",
                        (self.name, stored["_id"]),
                    ).fetchone()
                    if row:
                        conn.execute(
                            "UPDATE documents SET body_json = ? WHERE collection = ? AND doc_id = ?",
                            (body, self.name, stored["_id"]),
                        )
                    else:
                        seq = conn.execute(
                            "SELECT COALESCE(MAX(seq), 0) + 1 FROM documents WHERE collection = ?",
                            (self.name,),
                        ).fetchone()[0]
                        conn.execute(
                            """
                            INSERT INTO documents (collection, doc_id, seq, body_json)
                            VALUES (?, ?, ?, ?)
                            """,
                            (self.name, stored["_id"], seq, body),
                        )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Saved document",
            extra={"collection": self.name, "doc_id": stored["_id"]},
        )
        return json.loads(body, object_hook=_decode)

    async def remove(self, criteria: Optional[Filter] = None) -> int:
        async with self._store._lock:
            doomed = [doc["_id"] for doc in await self._all() if matches(doc, criteria)]
            if not doomed:
                return 0

            with self._store._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(
                        "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                        [(self.name, doc_id) for doc_id in doomed],
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Removed documents",
            extra={"collection": self.name, "removed": len(doomed)},
        )
        return len(doomed)

    async def drop(self) -> None:
        async with self._store._lock:
            with self._store._get_connection() as conn:
                conn.execute("DELETE FROM documents WHERE collection = ?", (self.name,))


class SqliteDocumentStore:
    """Document store backed by a single SQLite file.

    Thread safety:
        Each operation opens its own connection. Writes are serialized
        by an asyncio lock; SQLite handles concurrent readers via WAL mode.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/entitydb/entities.sqlite3")
        >>> doc = await store.collection("schemas").save({"machineName": "article"})
    """

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = asyncio.Lock()
        self._initialized = False

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a configured database connection, creating the file on first use."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            if not self._initialized:
                self._create_schema(conn)
                self._initialized = True

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                body_json TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );

            CREATE INDEX IF NOT EXISTS idx_documents_seq ON documents(collection, seq);
        """)
        logger.info(f"Initialized document store: {self.path}")

    def collection(self, name: str) -> SqliteCollection:
        """Get a collection handle by name."""
        return SqliteCollection(self, name)

    async def close(self) -> None:
        """Nothing to release; connections are per-operation."""
        logger.debug("SqliteDocumentStore closed")

    async def collection_names(self) -> List[str]:
        """Get the names of every collection holding documents."""
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT DISTINCT collection FROM documents ORDER BY collection")
            return [row["collection"] for row in cursor]
