"""
CLI tools for EntityDB administration.

This module provides command-line tools for:
- entity: Inspect schemas, count, page through and delete entities

Invariants:
    - Tools talk to the configured store directly (no server required)
    - Failures exit non-zero with a message on stderr
"""

from .entity_cli import EntityCLI

__all__ = ["EntityCLI"]
