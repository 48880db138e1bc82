"""
EntityDB Test Suite.

This package contains:
- unit/: Unit tests (single modules, in-memory or temporary SQLite stores)
- integration/: Manager-level flows on both store backends
"""
