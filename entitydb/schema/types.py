"""
Core type definitions for the EntityDB schema system.

This module defines the foundational types for schema field definitions:
- FieldType: The closed set of field types a schema may declare
- RuleConfig: One sanitizer or validator entry in a field's rule chain
- FieldConfig: A field definition with its ordered rule chains

Invariants:
    - Field types are limited to the FieldType members
    - Rule chains are always sorted by ascending weight
    - Rules with equal weight keep their insertion order

How to change safely:
    - Add new field types at the end of FieldType and give them metadata
    - Never rename a FieldType value; stored schemas reference it by value
    - Keep to_dict()/from_dict() symmetric with the stored document shape

Example:
    >>> title = FieldConfig(type=FieldType.STRING, title="Title", description="")
    >>> title.add_sanitizer(RuleConfig("trim"))
    >>> title.to_dict()["sanitizers"]
    [{'rule': 'trim', 'options': {}, 'weight': 0}]
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Dict, List


class FieldType(Enum):
    """Supported field types in the schema.

    ENTITY and ENTITIES hold references to other entities; every other
    type is stored verbatim.
    """

    MIXED = "Mixed"
    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    ARRAY = "Array"
    OBJECT = "Object"
    ENTITY = "Entity"  # Single reference to another entity
    ENTITIES = "Entities"  # List or mapping of references

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        """Convert string representation to FieldType.

        Args:
            value: String name of the field type

        Returns:
            Corresponding FieldType enum value

        Raises:
            ValueError: If value is not a valid field type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")

    @property
    def is_reference(self) -> bool:
        """Whether values of this type point at other entities."""
        return self in (FieldType.ENTITY, FieldType.ENTITIES)

    @property
    def title(self) -> str:
        return FIELD_TYPES[self]["title"]

    @property
    def description(self) -> str:
        return FIELD_TYPES[self]["description"]


FIELD_TYPES: Dict[FieldType, Dict[str, str]] = {
    FieldType.MIXED: {"title": "Mixed", "description": "A field containing mixed data."},
    FieldType.STRING: {"title": "String", "description": "A field containing a string."},
    FieldType.NUMBER: {"title": "Number", "description": "A field containing a number."},
    FieldType.BOOLEAN: {"title": "Boolean", "description": "A field containing a yes/no option."},
    FieldType.DATE: {"title": "Date", "description": "A field containing a date."},
    FieldType.ARRAY: {"title": "Array", "description": "A field containing an array of data."},
    FieldType.OBJECT: {"title": "Object", "description": "A field containing an object of data."},
    FieldType.ENTITY: {
        "title": "Entity",
        "description": "A field containing a reference to an entity.",
    },
    FieldType.ENTITIES: {"title": "Entities", "description": "An array or object of entities."},
}


@dataclass(frozen=True)
class RuleConfig:
    """A sanitizer or validator entry in a field's rule chain.

    Attributes:
        rule: Registered rule name
        options: Options passed to the rule
        weight: Ordering weight, lower runs first
    """

    rule: str
    options: Dict[str, Any] = dataclass_field(default_factory=dict)
    weight: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "rule": self.rule,
            "options": dict(self.options),
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RuleConfig:
        """Create from dictionary representation."""
        return cls(
            rule=data["rule"],
            options=dict(data.get("options") or {}),
            weight=data.get("weight") or 0,
        )


def _insert_sorted(rules: List[RuleConfig], rule: RuleConfig) -> None:
    rules.append(rule)
    # list.sort is stable, so equal weights keep insertion order.
    rules.sort(key=lambda r: r.weight)


@dataclass
class FieldConfig:
    """Definition of a single field within a schema.

    Attributes:
        type: The field type
        title: Admin title of the field
        description: Admin description of the field
        options: Free-form field options (e.g. "default", "required")
        sanitizers: Sanitizer chain, sorted by weight
        validators: Validator chain, sorted by weight
    """

    type: FieldType
    title: str = ""
    description: str = ""
    options: Dict[str, Any] = dataclass_field(default_factory=dict)
    sanitizers: List[RuleConfig] = dataclass_field(default_factory=list)
    validators: List[RuleConfig] = dataclass_field(default_factory=list)

    @property
    def default(self) -> Any:
        """The configured default value, or None."""
        return self.options.get("default")

    def add_sanitizer(self, rule: RuleConfig) -> None:
        """Insert a sanitizer keeping the chain sorted by weight."""
        _insert_sorted(self.sanitizers, rule)

    def add_validator(self, rule: RuleConfig) -> None:
        """Insert a validator keeping the chain sorted by weight."""
        _insert_sorted(self.validators, rule)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored document representation."""
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "options": dict(self.options),
            "validators": [r.to_dict() for r in self.validators],
            "sanitizers": [r.to_dict() for r in self.sanitizers],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FieldConfig:
        """Create from the stored document representation."""
        config = cls(
            type=FieldType.from_str(data["type"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
            options=dict(data.get("options") or {}),
        )
        for item in data.get("sanitizers") or []:
            config.add_sanitizer(RuleConfig.from_dict(item))
        for item in data.get("validators") or []:
            config.add_validator(RuleConfig.from_dict(item))
        return config
