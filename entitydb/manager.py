"""
EntityManager: the aggregate root of EntityDB.

The manager owns every collaborator (document store, rule registries,
event facility and settings) and hands them down explicitly to the
schemas and entities it creates. It resolves schemas by machine name,
constructs entities bound to them and answers existence, count and
paginated find queries over an entity kind's collection.

Invariants:
    - Every entity-level operation first resolves its schema; a missing
      schema fails with CantFindEntityError for the schemas collection
    - find() materializes entities in store order with every reference
      resolved, exactly like load()
    - per_page == 0 means no limit

How to change safely:
    - Never cache loaded entities here; each call returns fresh objects
    - Keep collection naming in Settings so stores stay addressable

Example:
    >>> manager = EntityManager(InMemoryDocumentStore())
    >>> schema = manager.new_schema("article", title="Article")
    >>> schema.add_field("title", "Title", "Headline", "String")
    >>> await schema.save()
    >>> article = await manager.create("article")
    >>> article.machine_name = "hello"
    >>> await article.save()
    >>> await manager.exists("article", "hello")
    True
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import Settings
from .entity import Entity
from .errors import CantFindEntityError
from .events import EventManager
from .rules import (
    SanitizerRegistry,
    ValidatorRegistry,
    default_sanitizers,
    default_validators,
    register_entity_rules,
)
from .references import Resolving
from .schema import Schema
from .store import Collection, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class SchemaSummary:
    """Listing entry for a stored schema."""

    machine_name: str
    title: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machineName": self.machine_name,
            "title": self.title,
            "description": self.description,
        }

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> SchemaSummary:
        return cls(
            machine_name=doc["machineName"],
            title=doc.get("title") or "",
            description=doc.get("description") or "",
        )


@dataclass
class FindResult:
    """One page of a find() query.

    Attributes:
        entities: Loaded entities, in store order
        page: 1-based page number
        total: Number of documents matching the filter
        per_page: Page size (0 means unlimited)
        page_count: Number of pages for this page size
    """

    entities: List[Entity] = dataclass_field(default_factory=list)
    page: int = 1
    total: int = 0
    per_page: int = 25
    page_count: int = 0

    @property
    def machine_names(self) -> List[Optional[str]]:
        return [entity.machine_name for entity in self.entities]


def _split_conditions(conditions: Optional[Mapping[str, Any]]) -> Tuple[Dict[str, Any], Optional[Dict[str, int]]]:
    """Split find() conditions into (filter, sort spec).

    Accepts a plain filter, a {filter, orderBy} envelope or a
    {$query, $orderby} envelope.
    """
    if not conditions:
        return {}, None

    for filter_key, order_key in (("filter", "orderBy"), ("$query", "$orderby")):
        if filter_key in conditions or order_key in conditions:
            criteria = dict(conditions.get(filter_key) or {})
            order = conditions.get(order_key)
            return criteria, dict(order) if order else None

    return dict(conditions), None


class EntityManager:
    """Schema resolution and entity queries over a document store.

    Args:
        store: Document store holding schemas, entities and the trash
        sanitizers: Sanitizer registry (builtin rules when omitted)
        validators: Validator registry (builtin rules when omitted)
        events: Event facility (a private EventManager when omitted)
        settings: Collection names and defaults (Settings() when omitted)
    """

    def __init__(
        self,
        store: DocumentStore,
        sanitizers: Optional[SanitizerRegistry] = None,
        validators: Optional[ValidatorRegistry] = None,
        events: Optional[EventManager] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.sanitizers = sanitizers if sanitizers is not None else default_sanitizers()
        self.validators = validators if validators is not None else default_validators()
        self.events = events if events is not None else EventManager()

        register_entity_rules(self, self.sanitizers, self.validators)

    @property
    def schemas_collection(self) -> Collection:
        return self.store.collection(self.settings.schemas_collection)

    @property
    def trash_collection(self) -> Collection:
        """The soft-delete collection shared by every kind."""
        return self.store.collection(self.settings.trash_collection)

    # Schemas

    async def schemas(self) -> List[SchemaSummary]:
        """List every stored schema."""
        docs = await self.schemas_collection.find({}).to_list()
        return [SchemaSummary.from_doc(doc) for doc in docs]

    def new_schema(self, machine_name: Optional[str] = None, title: str = "", description: str = "") -> Schema:
        """Construct an unsaved schema bound to this manager."""
        return Schema(self, machine_name, title=title, description=description)

    async def schema(self, name: str) -> Optional[Schema]:
        """Load a schema by machine name.

        Returns:
            The schema, or None if it loaded as a brand-new record

        Raises:
            CantFindEntityError: If no schema has this machine name
        """
        schema = Schema(self)
        await schema.load(name)
        if schema.is_new:
            return None
        return schema

    async def _require_schema(self, entity_type: str) -> Schema:
        schema = await self.schema(entity_type)
        if schema is None:
            raise CantFindEntityError(self.settings.schemas_collection, entity_type)
        return schema

    # Entities

    async def exists(self, entity_type: str, machine_name: str) -> bool:
        """Whether a live entity of this type has the machine name."""
        schema = await self._require_schema(entity_type)
        count = await schema.entity_collection.count({"machineName": machine_name})
        return count > 0

    async def count(self, entity_type: str) -> int:
        """Count the live entities of a type."""
        schema = await self._require_schema(entity_type)
        return await schema.entity_collection.count()

    async def create(self, entity_type: str, subtype: Optional[str] = None) -> Entity:
        """Construct a new, unsaved entity of a type."""
        schema = await self._require_schema(entity_type)
        return Entity(self, schema, subtype)

    async def load(
        self,
        entity_type: str,
        machine_name: str,
        force: bool = False,
        resolving: Optional[Resolving] = None,
    ) -> Optional[Entity]:
        """Load an entity, resolving its references.

        Args:
            entity_type: Schema machine name
            machine_name: Entity machine name
            force: Return None instead of raising when the entity is missing
            resolving: Entities already being loaded by an enclosing load;
                a match is returned as is

        Raises:
            CantFindEntityError: If the schema is missing, or the entity is
                missing and force is False
        """
        resolving = {} if resolving is None else resolving
        key = (entity_type, machine_name)
        if key in resolving:
            return resolving[key]

        schema = await self._require_schema(entity_type)
        if key in resolving:
            return resolving[key]

        entity = Entity(self, schema)
        try:
            await entity.load(machine_name, resolving)
        except CantFindEntityError:
            if force:
                return None
            raise
        return entity

    async def find(
        self,
        entity_type: str,
        conditions: Optional[Mapping[str, Any]] = None,
        per_page: Optional[int] = None,
        page: Optional[int] = None,
    ) -> FindResult:
        """Find one page of entities.

        Args:
            entity_type: Schema machine name
            conditions: A filter, or a {filter, orderBy} envelope
            per_page: Page size; 0 for no limit (default from settings)
            page: 1-based page number (default 1)

        Returns:
            FindResult with the loaded entities and paging totals

        Raises:
            CantFindEntityError: If the schema or a referenced entity is missing
            QueryError: If the filter or sort spec is invalid
        """
        schema = await self._require_schema(entity_type)
        criteria, order = _split_conditions(conditions)

        per_page = self.settings.default_per_page if per_page is None else max(int(per_page), 0)
        page = max(int(page or 1), 1)

        collection = schema.entity_collection
        total = await collection.count(criteria)

        cursor = collection.find(criteria).sort(order)
        if per_page:
            cursor.skip(per_page * (page - 1)).limit(per_page)
            page_count = math.ceil(total / per_page)
        else:
            page_count = 1 if total else 0

        docs = await cursor.to_list()
        # Entities on this page and everything they reference share one
        # resolution map, so references between them reuse these instances.
        entities = [Entity(self, schema, doc.get("subtype")) for doc in docs]
        resolving: Resolving = {
            (entity_type, doc["machineName"]): entity for entity, doc in zip(entities, docs)
        }
        await asyncio.gather(*(entity.from_doc(doc, resolving) for entity, doc in zip(entities, docs)))

        logger.debug(
            "Found entities",
            extra={
                "type": entity_type,
                "total": total,
                "page": page,
                "per_page": per_page,
                "returned": len(entities),
            },
        )

        return FindResult(
            entities=list(entities),
            page=page,
            total=total,
            per_page=per_page,
            page_count=page_count,
        )
