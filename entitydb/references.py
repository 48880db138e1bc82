"""
Entity references: light references and field value encoding.

A field of type Entity or Entities holds live Entity objects in memory and
light references ({type, subtype, machineName}) in stored documents. This
module converts between the two, dispatching on the field type:
- scalar types: stored verbatim
- ENTITY: a single reference (or None)
- ENTITIES: a list or a keyed mapping of references, shape preserved

Invariants:
    - A stored reference never embeds the referenced entity's data
    - Resolution of one value runs its element loads concurrently and
      fails with the first error raised
    - Missing references fail with CantFindEntityError from the manager
    - Within one load, each (type, machineName) resolves to a single Entity
      instance, so self references and cycles terminate

How to change safely:
    - A new reference-bearing FieldType needs a branch in both
      encode_field_value() and resolve_field_value()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

from .errors import InvalidEntityError, UnexpectedFieldValueError
from .schema.types import FieldType

if TYPE_CHECKING:
    from .entity import Entity
    from .manager import EntityManager


# Entities being loaded by one top-level load, keyed by (type, machineName).
Resolving = Dict[Tuple[str, str], "Entity"]


@dataclass(frozen=True)
class LightReference:
    """Pointer to an entity by type and machine name.

    Attributes:
        type: Schema machine name of the referenced entity
        machine_name: Machine name of the referenced entity
        subtype: Optional subtype of the referenced entity
    """

    type: str
    machine_name: str
    subtype: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored document representation."""
        return {
            "type": self.type,
            "subtype": self.subtype,
            "machineName": self.machine_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LightReference:
        """Create from the stored document representation."""
        return cls(
            type=data["type"],
            machine_name=data["machineName"],
            subtype=data.get("subtype"),
        )

    @classmethod
    def from_entity(cls, entity: Entity) -> LightReference:
        return cls(type=entity.type, machine_name=entity.machine_name, subtype=entity.subtype)

    @staticmethod
    def is_reference(value: Any) -> bool:
        """Whether a value has the stored light reference shape."""
        return isinstance(value, Mapping) and "type" in value and "machineName" in value


def _encode_reference(value: Any) -> Optional[Dict[str, Any]]:
    from .entity import Entity

    if value is None:
        return None
    if isinstance(value, Entity):
        return LightReference.from_entity(value).to_dict()
    if isinstance(value, LightReference):
        return value.to_dict()
    if LightReference.is_reference(value):
        return LightReference.from_dict(value).to_dict()
    raise InvalidEntityError(value)


def encode_field_value(field_type: FieldType, value: Any) -> Any:
    """Project an in-memory field value into its stored form.

    Raises:
        InvalidEntityError: If a reference field holds a non-entity value
        UnexpectedFieldValueError: If an Entities field is neither a list
            nor a mapping
    """
    if field_type is FieldType.ENTITY:
        return _encode_reference(value)

    if field_type is FieldType.ENTITIES:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return [_encode_reference(item) for item in value]
        if isinstance(value, Mapping) and not LightReference.is_reference(value):
            return {key: _encode_reference(item) for key, item in value.items()}
        raise UnexpectedFieldValueError("entities", value)

    return value


async def _resolve_reference(manager: EntityManager, value: Any, resolving: Optional[Resolving]) -> Any:
    if value is None:
        return None
    if isinstance(value, LightReference):
        reference = value
    elif LightReference.is_reference(value):
        reference = LightReference.from_dict(value)
    else:
        # Already a live entity (or an unrecognised value kept verbatim).
        return value
    return await manager.load(reference.type, reference.machine_name, resolving=resolving)


async def resolve_field_value(
    manager: EntityManager,
    field_type: FieldType,
    value: Any,
    resolving: Optional[Resolving] = None,
) -> Any:
    """Turn a stored field value back into live entities.

    Args:
        manager: Manager used to load referenced entities
        field_type: Declared type of the field
        value: Stored value
        resolving: Entities already being loaded, keyed by (type,
            machineName); a reference to one of them reuses that instance

    Returns:
        The value with every light reference replaced by a loaded Entity

    Raises:
        CantFindEntityError: If a referenced entity does not exist
    """
    if field_type is FieldType.ENTITY:
        return await _resolve_reference(manager, value, resolving)

    if field_type is FieldType.ENTITIES:
        if isinstance(value, list):
            return list(await asyncio.gather(*(
                _resolve_reference(manager, item, resolving) for item in value
            )))
        if isinstance(value, Mapping):
            keys = list(value)
            resolved = await asyncio.gather(*(
                _resolve_reference(manager, value[key], resolving) for key in keys
            ))
            return dict(zip(keys, resolved))

    return value
