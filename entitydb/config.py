"""
Configuration for EntityDB.

Uses pydantic-settings for environment variable loading. Every setting
can be overridden with an ENTITYDB_-prefixed environment variable, e.g.
ENTITYDB_STORE_BACKEND=memory.

Invariants:
    - All settings have sensible defaults for local development
    - Collection names are fixed for the lifetime of a store; changing
      them orphans existing documents

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never rename the collection settings for an existing deployment
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """EntityDB configuration loaded from environment."""

    # Document store
    store_backend: str = Field(default="sqlite", description="Document store backend (sqlite, memory)")
    sqlite_path: str = Field(default="entitydb.sqlite3", description="SQLite database file")
    sqlite_busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    # Collections
    schemas_collection: str = Field(default="schemas", description="Collection holding schemas")
    trash_collection: str = Field(default="trash", description="Shared soft-delete collection")
    entity_collection_prefix: str = Field(
        default="entity-",
        description="Prefix joined with a schema machine name to name its entity collection",
    )

    # Queries
    default_per_page: int = Field(default=25, description="Default page size for find()")

    # Auditing
    default_actor: str = Field(default="system", description="Actor recorded when none is given")

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (text, json)")

    model_config = {"env_prefix": "ENTITYDB_"}

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "EntityDB configuration loaded",
            extra={
                "store_backend": self.store_backend,
                "sqlite_path": self.sqlite_path if self.store_backend == "sqlite" else None,
                "schemas_collection": self.schemas_collection,
                "trash_collection": self.trash_collection,
                "log_level": self.log_level,
            },
        )
