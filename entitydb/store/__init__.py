"""
Document store abstraction for EntityDB.

This module provides a pluggable document backend supporting:
- SQLite (single-file, recommended for local deployments)
- In-memory (for testing)

The lifecycle layer only talks to the Collection protocol: count,
find_one, find (with sort/skip/limit), save (upsert by "_id") and remove.

Invariants:
    - Filters and sort specs are opaque to the lifecycle layer
    - Backends evaluate them through the same query functions
    - Stored documents are never shared with callers by reference

How to change safely:
    - New backends must implement the DocumentStore protocol
    - Run the store unit tests against every backend
"""

from .base import (
    Collection,
    Cursor,
    DocumentStore,
    create_document_store,
    new_document_id,
)
from .memory import InMemoryDocumentStore
from .query import matches, sort_documents
from .sqlite import SqliteDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "Collection",
    "Cursor",
    "new_document_id",
    # Query helpers
    "matches",
    "sort_documents",
    # Factory
    "create_document_store",
    # Implementations
    "InMemoryDocumentStore",
    "SqliteDocumentStore",
]
