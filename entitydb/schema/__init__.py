"""
Schema definitions for EntityDB.

This package provides:
- Field types and the field type catalog
- Field and rule configuration dataclasses
- The persisted Schema with per-field rule dispatch
"""

from .schema import Schema
from .types import FIELD_TYPES, FieldConfig, FieldType, RuleConfig

__all__ = [
    "FIELD_TYPES",
    "FieldConfig",
    "FieldType",
    "RuleConfig",
    "Schema",
]
