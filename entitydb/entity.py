"""
Entity: a schema-bound record with typed field values.

An Entity stores one value per schema field. Values of Entity/Entities
fields are live Entity objects in memory and light references in the
stored document; loading an entity resolves every reference through the
manager before the load completes.

Invariants:
    - type is the bound schema's machine name at construction and never
      changes
    - Every field read or written must be defined on the schema
    - set() stores the sanitized value, or nothing when sanitization fails
    - A load either populates every field or leaves the entity untouched
    - References back to an entity being loaded resolve to that instance

How to change safely:
    - Field encoding lives in references.py; keep extend_doc() and
      apply_doc() as thin dispatchers over it
    - Construction events are observation only; never rely on observer
      side effects inside the entity
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from .events import construct_event_names
from .persistence import Lifecycle, Record, record_attribute
from .references import LightReference, Resolving, encode_field_value, resolve_field_value
from .schema.types import FieldType

if TYPE_CHECKING:
    from .manager import EntityManager
    from .schema import Schema

logger = logging.getLogger(__name__)


class Entity:
    """A record of one entity kind.

    Example:
        >>> article = await manager.create("article")
        >>> article.machine_name = "hello-world"
        >>> await article.set("title", "Hello world")
        >>> await article.save(by="user:42")
        >>> article.get("title")
        'Hello world'
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

    def __init__(self, manager: EntityManager, schema: Schema, subtype: Optional[str] = None) -> None:
        self.manager = manager
        self.schema = schema
        self._type = schema.machine_name
        self.record = Record()
        self.lifecycle = Lifecycle(self.record, self, manager)
        self._subtype = subtype
        self._field_data: Dict[str, Any] = {}

        manager.events.fire(construct_event_names(self.type), manager, self)

    def __repr__(self) -> str:
        return f"Entity(type={self.type!r}, machine_name={self.machine_name!r})"

    @property
    def type(self) -> Optional[str]:
        """Machine name of the bound schema, fixed at construction."""
        return self._type

    @property
    def subtype(self) -> Optional[str]:
        return self._subtype

    @subtype.setter
    def subtype(self, value: Optional[str]) -> None:
        self._subtype = value
        self.record.is_updated = True

    @property
    def field_data(self) -> Mapping[str, Any]:
        """Read-only view of the stored field values."""
        return MappingProxyType(self._field_data)

    def to_light_reference(self) -> LightReference:
        return LightReference.from_entity(self)

    # Fields

    def get(self, name: str) -> Any:
        """Read a field value, falling back to the field's default.

        Raises:
            UnknownSchemaFieldError: If the schema has no such field
        """
        config = self.schema.get_field(name)
        if name in self._field_data:
            return self._field_data[name]
        return config.default

    async def set(self, name: str, value: Any) -> Entity:
        """Sanitize and store a field value.

        Raises:
            UnknownSchemaFieldError: If the schema has no such field
            RuleError: From the first failing sanitizer; the entity is
                left unchanged
        """
        _, sanitized = await self.schema.sanitize_field(name, value)
        self._field_data[name] = sanitized
        self.record.is_updated = True
        return self

    def _field_type(self, name: str) -> FieldType:
        if self.schema.has_field(name):
            return self.schema.get_field(name).type
        return FieldType.MIXED

    # Persistence

    async def save(self, by: Optional[str] = None) -> Entity:
        await self.lifecycle.save(by)
        return self

    async def load(self, machine_name: Optional[str] = None, resolving: Optional[Resolving] = None) -> Entity:
        """Load the entity by machine name, resolving its references.

        A reference back to this entity, directly or through a cycle,
        resolves to this same instance.
        """
        resolving = {} if resolving is None else resolving
        key = machine_name or self.machine_name
        if key:
            resolving.setdefault((self.type, key), self)
        await self.lifecycle.load(machine_name, resolving)
        return self

    async def delete(self, by: Optional[str] = None, permanently: bool = False) -> Entity:
        await self.lifecycle.delete(by, permanently)
        return self

    async def validate(self) -> None:
        """Validate the machine name and every field value.

        Raises:
            MissingMachineNameError: If the machine name is empty
            RuleError: From the machine-name rule or a field validator
        """
        await self.lifecycle.validate()

    async def to_doc(self, by: Optional[str] = None) -> Dict[str, Any]:
        """Serialize the entity into its stored document."""
        return await self.lifecycle.to_doc(by)

    async def from_doc(self, doc: Dict[str, Any], resolving: Optional[Resolving] = None) -> Entity:
        """Populate the entity from a stored document, resolving references."""
        resolving = {} if resolving is None else resolving
        if doc.get("machineName"):
            resolving.setdefault((self.type, doc["machineName"]), self)
        await self.lifecycle.set_doc(doc, resolving)
        return self

    # DocumentMapper hooks

    def collection_name(self) -> str:
        return f"{self.manager.settings.entity_collection_prefix}{self._type}"

    async def extend_doc(self, doc: Dict[str, Any]) -> None:
        doc["type"] = self.type
        doc["subtype"] = self._subtype
        doc["fieldData"] = {
            name: encode_field_value(self._field_type(name), value)
            for name, value in self._field_data.items()
        }

    async def apply_doc(self, doc: Dict[str, Any], resolving: Optional[Resolving] = None) -> None:
        field_data = dict(doc.get("fieldData") or {})
        references = [name for name in field_data if self._field_type(name).is_reference]

        resolved = await asyncio.gather(*(
            resolve_field_value(self.manager, self._field_type(name), field_data[name], resolving)
            for name in references
        ))
        field_data.update(zip(references, resolved))

        self._subtype = doc.get("subtype")
        self._field_data = field_data

        if references:
            logger.debug(
                "Resolved entity references",
                extra={"type": self.type, "machine_name": doc.get("machineName"), "fields": references},
            )

    async def validate_fields(self) -> None:
        for name in self.schema.field_names:
            await self.schema.validate_field(name, self.get(name))
