"""
Entity reference rules.

Sanitizers "entity" and "entities" turn light references into live Entity
objects by loading them through the manager; validators "entity" and
"entities" check that a field holds entities matching the rule options.

Rule options:
    type: Required entity type (also used for references without a type)
    subtype: Required entity subtype (validators only)
    machineName: Required machine name (validators only)

The rules close over the manager they load through, so each manager
registers its own copies (see register_entity_rules()).
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Mapping

from ..errors import (
    FailedEntityError,
    InvalidEntityError,
    InvalidEntityTypeError,
    MissingTypeConfigError,
    UnexpectedFieldValueError,
)
from ..references import LightReference

if TYPE_CHECKING:
    from ..entity import Entity
    from ..manager import EntityManager
    from .registry import RuleFunction, SanitizerRegistry, ValidatorRegistry


async def _to_entity(manager: EntityManager, rule: str, value: Any, options: Dict[str, Any]) -> Any:
    from ..entity import Entity

    if value is None or isinstance(value, Entity):
        return value

    if isinstance(value, LightReference):
        return await manager.load(value.type, value.machine_name)

    if isinstance(value, Mapping) and "machineName" in value:
        entity_type = value.get("type") or options.get("type")
        if not entity_type:
            raise MissingTypeConfigError(rule)
        return await manager.load(entity_type, value["machineName"])

    raise UnexpectedFieldValueError(rule, value)


def _check_type(entity: Any, options: Dict[str, Any]) -> None:
    expected = options.get("type")
    if expected and entity is not None and entity.type != expected:
        raise InvalidEntityTypeError(expected, entity.type)


def make_entity_sanitizer(manager: EntityManager) -> RuleFunction:
    """Build the "entity" sanitizer bound to a manager."""

    async def sanitize_entity(value: Any, options: Dict[str, Any]) -> Any:
        entity = await _to_entity(manager, "entity", value, options)
        _check_type(entity, options)
        return entity

    return sanitize_entity


def make_entities_sanitizer(manager: EntityManager) -> RuleFunction:
    """Build the "entities" sanitizer bound to a manager."""

    async def resolve(value: Any, options: Dict[str, Any]) -> Any:
        entity = await _to_entity(manager, "entities", value, options)
        _check_type(entity, options)
        return entity

    async def sanitize_entities(value: Any, options: Dict[str, Any]) -> Any:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return list(await asyncio.gather(*(resolve(item, options) for item in value)))
        if isinstance(value, Mapping):
            keys = list(value)
            resolved = await asyncio.gather(*(resolve(value[key], options) for key in keys))
            return dict(zip(keys, resolved))
        raise UnexpectedFieldValueError("entities", value)

    return sanitize_entities


def _entity_attributes(entity: Entity) -> Dict[str, Any]:
    return {
        "type": entity.type,
        "subtype": entity.subtype,
        "machineName": entity.machine_name,
    }


def _check_entity(value: Any, options: Dict[str, Any]) -> None:
    from ..entity import Entity

    if not isinstance(value, Entity):
        raise InvalidEntityError(value)

    attributes = _entity_attributes(value)
    for option, expected in options.items():
        if attributes.get(option) != expected:
            raise FailedEntityError(option)


def validate_entity(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    _check_entity(value, options)


def validate_entities(value: Any, options: Dict[str, Any]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        items = list(value.values())
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise InvalidEntityError(value)

    for item in items:
        _check_entity(item, options)


def register_entity_rules(
    manager: EntityManager,
    sanitizers: SanitizerRegistry,
    validators: ValidatorRegistry,
) -> None:
    """Register the entity rules that are not registered yet."""
    if not sanitizers.registered("entity"):
        sanitizers.register("entity", make_entity_sanitizer(manager))
    if not sanitizers.registered("entities"):
        sanitizers.register("entities", make_entities_sanitizer(manager))
    if not validators.registered("entity"):
        validators.register("entity", validate_entity)
    if not validators.registered("entities"):
        validators.register("entities", validate_entities)
