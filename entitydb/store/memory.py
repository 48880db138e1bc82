"""
In-memory document store implementation for testing.

This module provides a simple in-memory document backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Documents are deep-copied on the way in and out
    - Insertion order is preserved; replacing a document keeps its position

How to change safely:
    - Keep interface compatible with the Collection protocol
    - Keep query semantics in query.py, never special-case them here
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Dict, List, Optional
import logging

from .base import Cursor, Document, Filter, new_document_id
from .query import matches

logger = logging.getLogger(__name__)


class InMemoryCollection:
    """A named collection held in an InMemoryDocumentStore."""

    def __init__(self, store: InMemoryDocumentStore, name: str) -> None:
        self.name = name
        self._store = store

    @property
    def _docs(self) -> Dict[str, Document]:
        return self._store._collections[self.name]

    async def _snapshot(self) -> List[Document]:
        async with self._store._lock:
            return copy.deepcopy(list(self._docs.values()))

    async def count(self, criteria: Optional[Filter] = None) -> int:
        async with self._store._lock:
            return sum(1 for doc in self._docs.values() if matches(doc, criteria))

    async def find_one(self, criteria: Optional[Filter] = None) -> Optional[Document]:
        async with self._store._lock:
            for doc in self._docs.values():
                if matches(doc, criteria):
                    return copy.deepcopy(doc)
        return None

    def find(self, criteria: Optional[Filter] = None) -> Cursor:
        return Cursor(self._snapshot, criteria)

    async def save(self, doc: Document) -> Document:
        stored = copy.deepcopy(doc)
        if not stored.get("_id"):
            stored["_id"] = new_document_id()

        async with self._store._lock:
            self._docs[stored["_id"]] = stored

        logger.debug(
            "Document saved to in-memory store",
            extra={"collection": self.name, "doc_id": stored["_id"]},
        )
        return copy.deepcopy(stored)

    async def remove(self, criteria: Optional[Filter] = None) -> int:
        async with self._store._lock:
            doomed = [doc_id for doc_id, doc in self._docs.items() if matches(doc, criteria)]
            for doc_id in doomed:
                del self._docs[doc_id]

        logger.debug(
            "Documents removed from in-memory store",
            extra={"collection": self.name, "removed": len(doomed)},
        )
        return len(doomed)

    async def drop(self) -> None:
        async with self._store._lock:
            self._store._collections.pop(self.name, None)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    This provides a fully functional document store that keeps every
    collection in process memory. Useful for:
    - Unit tests that need store behavior without a database file
    - Integration tests that verify lifecycle logic
    - Local development and debugging

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> doc = await store.collection("schemas").save({"machineName": "article"})
        >>> doc["_id"]
        '3f2c...'
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    def collection(self, name: str) -> InMemoryCollection:
        """Get a collection handle by name."""
        return InMemoryCollection(self, name)

    async def close(self) -> None:
        """Clear all data."""
        self._collections.clear()
        logger.debug("InMemoryDocumentStore closed")

    # Testing helpers

    def collection_names(self) -> List[str]:
        """Get the names of collections holding documents (testing helper)."""
        return sorted(name for name, docs in self._collections.items() if docs)

    def get_all_documents(self, name: str) -> List[Document]:
        """Get copies of every document in a collection (testing helper)."""
        return copy.deepcopy(list(self._collections.get(name, {}).values()))
