"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore and Collection protocols that all
backends must implement, along with the shared Cursor used to apply
sort/skip/limit to query results.

Invariants:
    - Every collection is addressed by name; collections spring into
      existence on first write
    - Documents are plain JSON-like dicts keyed by a string "_id"
    - save() is an upsert keyed by "_id" and assigns one when absent
    - Filters and sort specs are passed through unmodified to the backend

How to change safely:
    - Protocol changes require updating all implementations
    - Keep query semantics in query.py so backends stay in agreement
    - Never let a backend hand out references to its stored documents
"""

from __future__ import annotations

import uuid
from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

from .query import matches, paginate, sort_documents

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Filter = Mapping[str, Any]


def new_document_id() -> str:
    """Generate a store-assigned document identity."""
    return uuid.uuid4().hex


class Cursor:
    """Lazily evaluated query result.

    The cursor collects the sort, skip and limit options and only reads
    the collection when iterated or materialized.

    Example:
        >>> cursor = collection.find({"type": "article"}).sort({"machineName": 1}).limit(10)
        >>> docs = await cursor.to_list()
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[Document]]],
        criteria: Optional[Filter] = None,
    ) -> None:
        self._fetch = fetch
        self._criteria = criteria
        self._sort: Optional[Mapping[str, int]] = None
        self._skip = 0
        self._limit = 0

    def sort(self, spec: Optional[Mapping[str, int]]) -> Cursor:
        """Order results by a {path: 1 | -1} mapping."""
        self._sort = spec or None
        return self

    def skip(self, count: int) -> Cursor:
        """Skip the first results."""
        self._skip = max(int(count or 0), 0)
        return self

    def limit(self, count: int) -> Cursor:
        """Limit the number of results; 0 means unlimited."""
        self._limit = max(int(count or 0), 0)
        return self

    async def to_list(self) -> List[Document]:
        """Materialize every matching document."""
        docs = [doc for doc in await self._fetch() if matches(doc, self._criteria)]
        docs = sort_documents(docs, self._sort)
        return paginate(docs, self._skip, self._limit)

    async def __aiter__(self) -> AsyncIterator[Document]:
        for doc in await self.to_list():
            yield doc


@runtime_checkable
class Collection(Protocol):
    """Protocol for a named collection of documents.

    Example:
        >>> schemas = store.collection("schemas")
        >>> doc = await schemas.save({"machineName": "article"})
        >>> await schemas.count({"machineName": "article"})
        1
    """

    name: str

    @abstractmethod
    async def count(self, criteria: Optional[Filter] = None) -> int:
        """Count documents matching the filter (all when omitted)."""
        ...

    @abstractmethod
    async def find_one(self, criteria: Optional[Filter] = None) -> Optional[Document]:
        """Return the first matching document in insertion order, or None."""
        ...

    @abstractmethod
    def find(self, criteria: Optional[Filter] = None) -> Cursor:
        """Return a cursor over matching documents."""
        ...

    @abstractmethod
    async def save(self, doc: Document) -> Document:
        """Insert or replace a document keyed by "_id".

        Returns:
            A copy of the stored document including its "_id"
        """
        ...

    @abstractmethod
    async def remove(self, criteria: Optional[Filter] = None) -> int:
        """Remove matching documents.

        Returns:
            Number of removed documents
        """
        ...

    @abstractmethod
    async def drop(self) -> None:
        """Remove the whole collection."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends."""

    @abstractmethod
    def collection(self, name: str) -> Collection:
        """Get a collection handle by name."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...


def create_document_store(settings: "Settings") -> DocumentStore:
    """Factory function to create a document store from configuration.

    Args:
        settings: EntityDB settings

    Returns:
        Appropriate DocumentStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from .memory import InMemoryDocumentStore
    from .sqlite import SqliteDocumentStore

    backend = settings.store_backend.lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    elif backend == "sqlite":
        return SqliteDocumentStore(
            settings.sqlite_path,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {settings.store_backend}")
