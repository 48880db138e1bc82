"""
Generic persistence lifecycle shared by schemas and entities.

Every persisted object is made of three parts:
- Record: identity, machine name, transient flags and audit metadata
- DocumentMapper: supplies the collection name and maps the object's own
  state to and from a store document
- Lifecycle: the save/load/delete algorithm, driven by a Record and a
  DocumentMapper against the manager's store and rule registries

Save pipeline (strictly sequential, first failure aborts):
    1. sanitize the machine name with the "trim" rule
    2. validate: missing name, "machine-name" rule, mapper field checks
    3. serialize to a document
    4. uniqueness probe by machine name in the target collection
    5. upsert the document
    6. if the record was trashed, remove its trash entry

Invariants:
    - Two live records of one collection never share a machine name
    - Transient flags (new/updated/trashed/renaming) are never persisted
    - A trash entry is {collection, machineName, doc}; doc carries no
      identity and no machine name
    - Errors propagate unchanged; nothing here retries or wraps

How to change safely:
    - Keep every pipeline step awaited in order
    - Mapper hooks must only add to or read from the document; identity
      and audit keys belong to the Lifecycle
    - The uniqueness probe is check-then-act; concurrent writers of the
      same machine name are not protected against
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from .errors import CantFindEntityError, MachineNameExistsError, MissingMachineNameError
from .store import Collection

if TYPE_CHECKING:
    from .manager import EntityManager
    from .references import Resolving

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


class Record:
    """Identity, flags and audit metadata of a persisted object.

    Attributes:
        id: Store-assigned identity (None until first save)
        is_new: Never saved or loaded
        is_updated: Changed since the last save or load
        is_trashed: Currently held in the trash collection
        is_renaming: Machine name changed since the last save
        created_on: Creation time (Unix ms)
        created_by: Creating actor
        updated_on: Last save time (Unix ms)
        updated_by: Last saving actor
    """

    def __init__(self) -> None:
        on = now_ms()
        self.id: Optional[str] = None
        self.is_new = True
        self.is_updated = False
        self.is_trashed = False
        self.is_renaming = False
        self.created_on: int = on
        self.created_by: Optional[str] = None
        self.updated_on: int = on
        self.updated_by: Optional[str] = None
        self._machine_name: Optional[str] = None
        self._persisted_name: Optional[str] = None

    @property
    def machine_name(self) -> Optional[str]:
        """The unique, human-chosen key of the record."""
        return self._machine_name

    @machine_name.setter
    def machine_name(self, value: Optional[str]) -> None:
        if value == self._machine_name:
            return
        if not self.is_new and self._persisted_name is not None:
            # Setting the stored name back cancels a pending rename.
            self.is_renaming = value != self._persisted_name
        self.is_updated = True
        self._machine_name = value

    def apply_doc(self, doc: Dict[str, Any]) -> None:
        """Populate identity and audit metadata from a stored document."""
        self.id = doc.get("_id")
        self._machine_name = doc.get("machineName")
        self._persisted_name = self._machine_name
        created = doc.get("created") or {}
        updated = doc.get("updated") or {}
        self.created_on = created.get("on", self.created_on)
        self.created_by = created.get("by")
        self.updated_on = updated.get("on", self.updated_on)
        self.updated_by = updated.get("by")

    def to_doc(self, by: str) -> Dict[str, Any]:
        """Build the identity and audit part of a store document."""
        on = now_ms()
        doc: Dict[str, Any] = {}
        if self.id:
            doc["_id"] = self.id

        doc["machineName"] = self.machine_name
        doc["created"] = {
            "on": on if self.is_new else self.created_on,
            "by": self.created_by or by,
        }
        doc["updated"] = {"on": on, "by": by}
        return doc


def record_attribute(name: str, readonly: bool = False) -> property:
    """Expose a Record attribute on the object owning the record."""

    def getter(self: Any) -> Any:
        return getattr(self.record, name)

    def setter(self: Any, value: Any) -> None:
        setattr(self.record, name, value)

    return property(getter, None if readonly else setter, doc=f"Record.{name}")


class DocumentMapper(Protocol):
    """Override points a persisted object supplies to its Lifecycle."""

    def collection_name(self) -> str:
        """Name of the collection holding this object's documents."""
        ...

    async def extend_doc(self, doc: Dict[str, Any]) -> None:
        """Add the object's own state to a document being saved."""
        ...

    async def apply_doc(self, doc: Dict[str, Any], resolving: Optional[Resolving] = None) -> None:
        """Populate the object's own state from a loaded document.

        resolving maps (type, machineName) to the entities already being
        loaded by the enclosing load, so reference cycles reuse them.
        """
        ...

    async def validate_fields(self) -> None:
        """Validate the object's own state before saving."""
        ...


class Lifecycle:
    """The save/load/delete state machine for one persisted object.

    Example:
        >>> lifecycle = Lifecycle(record, mapper, manager)
        >>> record.machine_name = "article"
        >>> await lifecycle.save(by="user:42")
        >>> await lifecycle.delete()            # moves to trash
        >>> await lifecycle.delete()            # removes permanently
    """

    def __init__(self, record: Record, mapper: DocumentMapper, manager: EntityManager) -> None:
        self.record = record
        self.mapper = mapper
        self.manager = manager
        self._trashed_as: Optional[str] = None

    @property
    def collection_name(self) -> str:
        return self.mapper.collection_name()

    @property
    def collection(self) -> Collection:
        """The primary collection of this object."""
        return self.manager.store.collection(self.collection_name)

    @property
    def trash(self) -> Collection:
        return self.manager.trash_collection

    async def sanitize(self) -> None:
        """Trim the machine name."""
        _, value = await self.manager.sanitizers.sanitize("trim", self.record.machine_name)
        self.record.machine_name = value

    async def validate(self) -> None:
        """Validate the machine name, then the mapper's own state.

        Raises:
            MissingMachineNameError: If the machine name is empty
            RuleError: If the "machine-name" rule or a field rule fails
        """
        if not self.record.machine_name:
            raise MissingMachineNameError()

        await self.manager.validators.validate("machine-name", self.record.machine_name)
        await self.mapper.validate_fields()

    async def to_doc(self, by: Optional[str] = None) -> Dict[str, Any]:
        """Serialize the object into a store document."""
        doc = self.record.to_doc(by or self.manager.settings.default_actor)
        await self.mapper.extend_doc(doc)
        return doc

    async def set_doc(self, doc: Dict[str, Any], resolving: Optional[Resolving] = None) -> None:
        """Populate the object from a stored document and mark it clean."""
        await self.mapper.apply_doc(doc, resolving)
        self.record.apply_doc(doc)
        self.record.is_new = False
        self.record.is_updated = False
        self.record.is_renaming = False

    async def _assert_unique(self) -> None:
        name = self.record.machine_name
        count = await self.collection.count({"machineName": name})
        if count == 0:
            return

        # Re-saving a live record under its own name is not a collision.
        if count == 1 and self.record.id and not self.record.is_trashed:
            existing = await self.collection.find_one({"machineName": name})
            if existing is not None and existing.get("_id") == self.record.id:
                return

        raise MachineNameExistsError(name)

    async def save(self, by: Optional[str] = None) -> None:
        """Persist the object.

        Args:
            by: Actor performing the save (defaults to the configured actor)

        Raises:
            MissingMachineNameError: If the machine name is empty
            MachineNameExistsError: If another live record holds the name
            RuleError: If sanitization or validation fails
        """
        await self.sanitize()
        await self.validate()
        doc = await self.to_doc(by)
        await self._assert_unique()

        stored = await self.collection.save(doc)

        if self.record.is_trashed:
            await self.trash.remove({
                "collection": self.collection_name,
                "machineName": self._trashed_as or self.record.machine_name,
            })
            self.record.is_trashed = False
            self._trashed_as = None
            logger.debug(
                "Restored record from trash",
                extra={"collection": self.collection_name, "machine_name": self.record.machine_name},
            )

        self.record.is_renaming = False
        self.record.is_new = False
        self.record.is_updated = False
        self.record.apply_doc(stored)

        logger.debug(
            "Saved record",
            extra={
                "collection": self.collection_name,
                "machine_name": self.record.machine_name,
                "doc_id": self.record.id,
            },
        )

    async def load(self, machine_name: Optional[str] = None, resolving: Optional[Resolving] = None) -> None:
        """Load the object by machine name, falling back to the trash.

        Args:
            machine_name: Key to load (defaults to the current machine name)
            resolving: Entities already being loaded, keyed by (type,
                machineName)

        Raises:
            MissingMachineNameError: If no machine name is available
            CantFindEntityError: If neither the collection nor the trash
                holds the machine name
        """
        machine_name = machine_name or self.record.machine_name
        if not machine_name:
            raise MissingMachineNameError()

        doc = await self.collection.find_one({"machineName": machine_name})
        trashed = False

        if doc is None:
            envelope = await self.trash.find_one({
                "collection": self.collection_name,
                "machineName": machine_name,
            })
            if envelope is not None:
                trashed = True
                doc = dict(envelope.get("doc") or {})
                doc["_id"] = envelope.get("_id")
                doc["machineName"] = envelope["machineName"]

        if doc is None:
            raise CantFindEntityError(self.collection_name, machine_name)

        await self.set_doc(doc, resolving)
        self.record.is_trashed = trashed
        self._trashed_as = machine_name if trashed else None

        logger.debug(
            "Loaded record",
            extra={
                "collection": self.collection_name,
                "machine_name": machine_name,
                "trashed": trashed,
            },
        )

    async def delete(self, by: Optional[str] = None, permanently: bool = False) -> None:
        """Move the object to the trash, or remove it permanently.

        Deleting an object that is already trashed always removes it
        permanently.

        Args:
            by: Actor performing the delete
            permanently: Skip the trash and remove the document

        Raises:
            MissingMachineNameError: If the machine name is empty
            CantFindEntityError: If an unsaved or modified object has to be
                reloaded before trashing and cannot be found
        """
        if not self.record.machine_name:
            raise MissingMachineNameError()

        stale = self.record.is_new or self.record.is_updated
        if not permanently and not self.record.is_trashed and stale:
            await self.load()

        # A reload may have found the record in the trash.
        trashed = self.record.is_trashed
        permanently = True if trashed else permanently

        if not permanently:
            doc = await self.to_doc(by)
            doc.pop("_id", None)
            doc.pop("machineName", None)

            stored = await self.trash.save({
                "collection": self.collection_name,
                "machineName": self.record.machine_name,
                "doc": doc,
            })
            self.record.is_trashed = True
            self.record.id = stored["_id"]
            self._trashed_as = self.record.machine_name

        if trashed:
            await self.trash.remove({
                "collection": self.collection_name,
                "machineName": self._trashed_as or self.record.machine_name,
            })
        else:
            await self.collection.remove({"machineName": self.record.machine_name})

        if permanently:
            self.record.is_trashed = False
            self.record.is_new = True
            self.record.id = None
            self._trashed_as = None

        logger.debug(
            "Deleted record",
            extra={
                "collection": self.collection_name,
                "machine_name": self.record.machine_name,
                "permanently": permanently,
            },
        )
