"""
Sanitizer and validator rules for EntityDB.

This package provides:
- SanitizerRegistry / ValidatorRegistry: name-indexed rule storage
- Builtin rules and registries preloaded with them
- Entity reference rules bound to a manager
"""

from .builtin import (
    BUILTIN_SANITIZERS,
    BUILTIN_VALIDATORS,
    MACHINE_NAME_PATTERN,
    default_sanitizers,
    default_validators,
)
from .entity import (
    make_entities_sanitizer,
    make_entity_sanitizer,
    register_entity_rules,
    validate_entities,
    validate_entity,
)
from .registry import RuleFunction, SanitizerRegistry, ValidatorRegistry

__all__ = [
    "BUILTIN_SANITIZERS",
    "BUILTIN_VALIDATORS",
    "MACHINE_NAME_PATTERN",
    "RuleFunction",
    "SanitizerRegistry",
    "ValidatorRegistry",
    "default_sanitizers",
    "default_validators",
    "make_entities_sanitizer",
    "make_entity_sanitizer",
    "register_entity_rules",
    "validate_entities",
    "validate_entity",
]
