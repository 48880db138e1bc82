"""
Schema: a persisted definition of one entity kind.

A Schema holds the field definitions of an entity kind and dispatches the
per-field sanitizer and validator chains. It is persisted through a
Lifecycle in the shared schemas collection; entities bound to it live in
their own collection named after the schema's machine name.

Invariants:
    - Field names are unique within a schema
    - Field types are limited to FieldType members
    - Only registered rules can be attached to a field
    - Rule chains run in ascending weight order; the first failure aborts

How to change safely:
    - Every mutation must mark the record updated
    - Keep the stored "fields" shape in sync with FieldConfig.to_dict()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

from ..errors import (
    SchemaFieldDefinedError,
    UnknownFieldTypeError,
    UnknownSanitizerError,
    UnknownSchemaFieldError,
    UnknownValidatorError,
)
from ..persistence import Lifecycle, Record, record_attribute
from ..store import Collection
from .types import FieldConfig, FieldType, RuleConfig

if TYPE_CHECKING:
    from ..manager import EntityManager
    from ..references import Resolving

logger = logging.getLogger(__name__)


class Schema:
    """Field definitions and rule dispatch for one entity kind.

    Example:
        >>> schema = manager.new_schema("article", title="Article")
        >>> schema.add_field("title", "Title", "Headline", "String", {"default": ""})
        >>> schema.add_field_sanitization("title", "trim")
        >>> await schema.save()
        >>> await schema.sanitize_field("title", "  Hello ")
        ('  Hello ', 'Hello')
    """

    id = record_attribute("id", readonly=True)
    machine_name = record_attribute("machine_name")
    is_new = record_attribute("is_new", readonly=True)
    is_updated = record_attribute("is_updated", readonly=True)
    is_trashed = record_attribute("is_trashed", readonly=True)
    is_renaming = record_attribute("is_renaming", readonly=True)
    created_on = record_attribute("created_on", readonly=True)
    created_by = record_attribute("created_by", readonly=True)
    updated_on = record_attribute("updated_on", readonly=True)
    updated_by = record_attribute("updated_by", readonly=True)

    def __init__(
        self,
        manager: EntityManager,
        machine_name: Optional[str] = None,
        title: str = "",
        description: str = "",
    ) -> None:
        self.manager = manager
        self.record = Record()
        self.lifecycle = Lifecycle(self.record, self, manager)
        self._title = title
        self._description = description
        self._fields: Dict[str, FieldConfig] = {}
        self.record.machine_name = machine_name
        self.record.is_updated = False

    def __repr__(self) -> str:
        return f"Schema(machine_name={self.machine_name!r}, fields={self.field_names!r})"

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str) -> None:
        self._title = value
        self.record.is_updated = True

    @property
    def description(self) -> str:
        return self._description

    @description.setter
    def description(self, value: str) -> None:
        self._description = value
        self.record.is_updated = True

    @property
    def fields(self) -> Dict[str, FieldConfig]:
        """Field definitions keyed by name (a copy)."""
        return dict(self._fields)

    @property
    def field_names(self) -> List[str]:
        return list(self._fields)

    @property
    def entity_collection_name(self) -> str:
        """Name of the collection holding entities of this kind."""
        return f"{self.manager.settings.entity_collection_prefix}{self.machine_name}"

    @property
    def entity_collection(self) -> Collection:
        return self.manager.store.collection(self.entity_collection_name)

    # Field definitions

    def add_field(
        self,
        name: str,
        title: str,
        description: str,
        type: Union[FieldType, str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Schema:
        """Define a new field.

        Args:
            name: Field name, unique within the schema
            title: Admin title
            description: Admin description
            type: A FieldType or its string value (e.g. "String")
            options: Free-form field options such as "default"

        Returns:
            The schema, for chaining

        Raises:
            SchemaFieldDefinedError: If the field already exists
            UnknownFieldTypeError: If the type is not a known field type
        """
        if name in self._fields:
            raise SchemaFieldDefinedError(name)

        if not isinstance(type, FieldType):
            try:
                type = FieldType.from_str(type)
            except ValueError:
                raise UnknownFieldTypeError(name, str(type))

        self._fields[name] = FieldConfig(
            type=type,
            title=title,
            description=description,
            options=dict(options or {}),
        )
        self.record.is_updated = True
        return self

    def has_field(self, name: str) -> bool:
        return name in self._fields

    def get_field(self, name: str) -> FieldConfig:
        """Get a field definition.

        Raises:
            UnknownSchemaFieldError: If the field is not defined
        """
        config = self._fields.get(name)
        if config is None:
            raise UnknownSchemaFieldError(name)
        return config

    def del_field(self, name: str) -> Schema:
        """Remove a field definition.

        Raises:
            UnknownSchemaFieldError: If the field is not defined
        """
        self.get_field(name)
        del self._fields[name]
        self.record.is_updated = True
        return self

    def add_field_validation(
        self,
        name: str,
        rule: str,
        options: Optional[Dict[str, Any]] = None,
        weight: int = 0,
    ) -> Schema:
        """Attach a validator to a field.

        Raises:
            UnknownSchemaFieldError: If the field is not defined
            UnknownValidatorError: If the rule is not registered
        """
        config = self.get_field(name)
        if not self.manager.validators.registered(rule):
            raise UnknownValidatorError(rule)

        config.add_validator(RuleConfig(rule=rule, options=dict(options or {}), weight=weight))
        self.record.is_updated = True
        return self

    def add_field_sanitization(
        self,
        name: str,
        rule: str,
        options: Optional[Dict[str, Any]] = None,
        weight: int = 0,
    ) -> Schema:
        """Attach a sanitizer to a field.

        Raises:
            UnknownSchemaFieldError: If the field is not defined
            UnknownSanitizerError: If the rule is not registered
        """
        config = self.get_field(name)
        if not self.manager.sanitizers.registered(rule):
            raise UnknownSanitizerError(rule)

        config.add_sanitizer(RuleConfig(rule=rule, options=dict(options or {}), weight=weight))
        self.record.is_updated = True
        return self

    # Rule dispatch

    async def sanitize_field(self, name: str, value: Any) -> Tuple[Any, Any]:
        """Run a value through the field's sanitizer chain.

        Args:
            name: Field name
            value: Raw value

        Returns:
            Tuple of (original_value, sanitized_value)

        Raises:
            UnknownSchemaFieldError: If the field is not defined
            RuleError: From the first failing sanitizer
        """
        config = self.get_field(name)
        current = value
        for rule in config.sanitizers:
            _, current = await self.manager.sanitizers.sanitize(rule.rule, current, rule.options)
        return value, current

    async def validate_field(self, name: str, value: Any) -> Any:
        """Run a value through the field's validator chain.

        Returns:
            The validated value

        Raises:
            UnknownSchemaFieldError: If the field is not defined
            RuleError: From the first failing validator
        """
        config = self.get_field(name)
        for rule in config.validators:
            value = await self.manager.validators.validate(rule.rule, value, rule.options)
        return value

    # Persistence

    async def save(self, by: Optional[str] = None) -> Schema:
        await self.lifecycle.save(by)
        logger.info("Saved schema", extra={"schema": self.machine_name, "fields": len(self._fields)})
        return self

    async def load(self, machine_name: Optional[str] = None) -> Schema:
        await self.lifecycle.load(machine_name)
        return self

    async def delete(self, by: Optional[str] = None, permanently: bool = False) -> Schema:
        await self.lifecycle.delete(by, permanently)
        return self

    async def validate(self) -> None:
        await self.lifecycle.validate()

    async def to_doc(self, by: Optional[str] = None) -> Dict[str, Any]:
        """Serialize the schema into its stored document."""
        return await self.lifecycle.to_doc(by)

    # DocumentMapper hooks

    def collection_name(self) -> str:
        return self.manager.settings.schemas_collection

    async def extend_doc(self, doc: Dict[str, Any]) -> None:
        doc["title"] = self._title
        doc["description"] = self._description
        doc["fields"] = {name: config.to_dict() for name, config in self._fields.items()}

    async def apply_doc(self, doc: Dict[str, Any], resolving: Optional[Resolving] = None) -> None:
        self._title = doc.get("title") or ""
        self._description = doc.get("description") or ""
        self._fields = {
            name: FieldConfig.from_dict(data) for name, data in (doc.get("fields") or {}).items()
        }

    async def validate_fields(self) -> None:
        return None
