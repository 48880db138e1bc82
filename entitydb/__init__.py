"""
EntityDB - schema-governed entities over a document store.

This package implements an entity management layer built on:
- Schemas: persisted field definitions with ordered sanitizer and
  validator chains
- Entities: schema-bound records with typed fields and lazily resolved
  references to other entities
- A shared persistence lifecycle: save, load, soft-delete to the trash,
  restore and rename, keyed by a unique machine name
- A pluggable document store (SQLite or in-memory)

Architecture:
    ┌───────────────┐     ┌──────────┐     ┌──────────┐
    │ EntityManager │────▶│  Schema  │────▶│  Entity  │
    └───────┬───────┘     └────┬─────┘     └────┬─────┘
            │                  │                │
            │                  ▼                ▼
            │            ┌─────────────────────────────┐
            └───────────▶│ Lifecycle (save/load/delete)│
                         └──────────────┬──────────────┘
                                        ▼
                         ┌─────────────────────────────┐
                         │ DocumentStore (SQLite/memory)│
                         └─────────────────────────────┘

Invariants:
    - Two live records of one kind never share a machine name
    - Soft-deleted records of every kind share one trash collection
    - Stored references are {type, subtype, machineName}, never copies
    - Collaborators are passed to the manager explicitly
"""

from ._version import __version__
from .config import Settings
from .entity import Entity
from .errors import (
    CantFindEntityError,
    EntityDbError,
    MachineNameExistsError,
    MissingMachineNameError,
    RuleError,
    SchemaFieldDefinedError,
    UnknownFieldTypeError,
    UnknownSchemaFieldError,
)
from .events import EventManager
from .manager import EntityManager, FindResult, SchemaSummary
from .references import LightReference
from .schema import FIELD_TYPES, FieldConfig, FieldType, RuleConfig, Schema
from .store import InMemoryDocumentStore, SqliteDocumentStore, create_document_store

__all__ = [
    "__version__",
    # Manager
    "EntityManager",
    "FindResult",
    "SchemaSummary",
    # Records
    "Entity",
    "Schema",
    "LightReference",
    # Schema types
    "FIELD_TYPES",
    "FieldConfig",
    "FieldType",
    "RuleConfig",
    # Collaborators
    "EventManager",
    "Settings",
    "InMemoryDocumentStore",
    "SqliteDocumentStore",
    "create_document_store",
    # Errors
    "EntityDbError",
    "CantFindEntityError",
    "MachineNameExistsError",
    "MissingMachineNameError",
    "RuleError",
    "SchemaFieldDefinedError",
    "UnknownFieldTypeError",
    "UnknownSchemaFieldError",
]
