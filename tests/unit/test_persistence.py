"""
Unit tests for the persistence lifecycle.

Tests cover:
- Record flags and rename tracking
- Save pipeline: trim, validation, uniqueness, upsert
- Load from the primary collection and from the trash
- Soft delete, permanent delete and restore
"""

import pytest

from entitydb.errors import (
    CantFindEntityError,
    MachineNameExistsError,
    MissingMachineNameError,
    ValidationFailedError,
)
from entitydb.manager import EntityManager
from entitydb.persistence import Lifecycle, Record
from entitydb.store import InMemoryDocumentStore


class NoteMapper:
    """Minimal DocumentMapper storing a single "body" value."""

    def __init__(self):
        self.body = None
        self.validated = 0

    def collection_name(self):
        return "notes"

    async def extend_doc(self, doc):
        doc["body"] = self.body

    async def apply_doc(self, doc, resolving=None):
        self.body = doc.get("body")

    async def validate_fields(self):
        self.validated += 1


class TestRecord:
    """Tests for Record flags."""

    def test_new_record(self):
        record = Record()

        assert record.id is None
        assert record.is_new
        assert not record.is_updated
        assert not record.is_trashed
        assert not record.is_renaming
        assert record.created_on > 0

    def test_setting_name_on_new_record_is_not_a_rename(self):
        record = Record()
        record.machine_name = "a"
        record.machine_name = "b"

        assert record.is_updated
        assert not record.is_renaming

    def test_renaming_persisted_record(self):
        record = Record()
        record.apply_doc({"_id": "1", "machineName": "a"})
        record.is_new = False

        record.machine_name = "b"

        assert record.is_renaming
        assert record.is_updated

    def test_same_name_is_not_a_change(self):
        record = Record()
        record.apply_doc({"_id": "1", "machineName": "a"})
        record.is_new = False

        record.machine_name = "a"

        assert not record.is_updated
        assert not record.is_renaming

    def test_setting_name_back_cancels_rename(self):
        record = Record()
        record.apply_doc({"_id": "1", "machineName": "a"})
        record.is_new = False

        record.machine_name = "b"
        record.machine_name = "a"

        assert not record.is_renaming

    def test_to_doc_keeps_creation_audit(self):
        record = Record()
        record.apply_doc({
            "_id": "1",
            "machineName": "a",
            "created": {"on": 100, "by": "user:alice"},
            "updated": {"on": 200, "by": "user:alice"},
        })
        record.is_new = False

        doc = record.to_doc("user:bob")

        assert doc["_id"] == "1"
        assert doc["created"] == {"on": 100, "by": "user:alice"}
        assert doc["updated"]["by"] == "user:bob"
        assert doc["updated"]["on"] >= 200


class TestLifecycle:
    """Tests for Lifecycle save/load/delete."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore()

    @pytest.fixture
    def manager(self, store):
        return EntityManager(store)

    def make(self, manager, name=None, body=None):
        mapper = NoteMapper()
        mapper.body = body
        record = Record()
        record.machine_name = name
        return record, mapper, Lifecycle(record, mapper, manager)

    @pytest.mark.asyncio
    async def test_save_trims_and_persists(self, manager, store):
        record, mapper, lifecycle = self.make(manager, "  note1  ", "hello")

        await lifecycle.save()

        assert record.machine_name == "note1"
        assert record.id
        assert not record.is_new
        assert not record.is_updated
        assert record.created_by == "system"
        assert mapper.validated == 1

        docs = store.get_all_documents("notes")
        assert len(docs) == 1
        assert docs[0]["machineName"] == "note1"
        assert docs[0]["body"] == "hello"

    @pytest.mark.asyncio
    async def test_save_without_name(self, manager, store):
        _, _, lifecycle = self.make(manager, None)

        with pytest.raises(MissingMachineNameError):
            await lifecycle.save()

        assert store.get_all_documents("notes") == []

    @pytest.mark.asyncio
    async def test_save_with_blank_name(self, manager):
        """Whitespace-only names trim to empty and are rejected."""
        _, _, lifecycle = self.make(manager, "   ")

        with pytest.raises(MissingMachineNameError):
            await lifecycle.save()

    @pytest.mark.asyncio
    async def test_save_invalid_name(self, manager, store):
        _, mapper, lifecycle = self.make(manager, "Not a valid machine name")

        with pytest.raises(ValidationFailedError):
            await lifecycle.save()

        assert mapper.validated == 0
        assert store.get_all_documents("notes") == []

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, manager, store):
        _, _, first = self.make(manager, "note1", "first")
        await first.save()
        _, _, second = self.make(manager, "note1", "second")

        with pytest.raises(MachineNameExistsError):
            await second.save()

        docs = store.get_all_documents("notes")
        assert len(docs) == 1
        assert docs[0]["body"] == "first"

    @pytest.mark.asyncio
    async def test_resave_under_own_name(self, manager, store):
        record, mapper, lifecycle = self.make(manager, "note1", "v1")
        await lifecycle.save(by="user:alice")
        created_on = record.created_on

        mapper.body = "v2"
        await lifecycle.save(by="user:bob")

        docs = store.get_all_documents("notes")
        assert len(docs) == 1
        assert docs[0]["body"] == "v2"
        assert docs[0]["created"] == {"on": created_on, "by": "user:alice"}
        assert docs[0]["updated"]["by"] == "user:bob"

    @pytest.mark.asyncio
    async def test_rename(self, manager, store):
        record, _, lifecycle = self.make(manager, "old", "body")
        await lifecycle.save()

        record.machine_name = "new"
        assert record.is_renaming
        await lifecycle.save()

        assert not record.is_renaming
        assert [d["machineName"] for d in store.get_all_documents("notes")] == ["new"]

    @pytest.mark.asyncio
    async def test_rename_to_taken_name(self, manager, store):
        _, _, other = self.make(manager, "taken")
        await other.save()
        record, _, lifecycle = self.make(manager, "mine")
        await lifecycle.save()

        record.machine_name = "taken"
        with pytest.raises(MachineNameExistsError):
            await lifecycle.save()

        names = sorted(d["machineName"] for d in store.get_all_documents("notes"))
        assert names == ["mine", "taken"]

    @pytest.mark.asyncio
    async def test_load(self, manager):
        _, _, saved = self.make(manager, "note1", "hello")
        await saved.save()

        record, mapper, lifecycle = self.make(manager)
        await lifecycle.load("note1")

        assert record.machine_name == "note1"
        assert record.id == saved.record.id
        assert mapper.body == "hello"
        assert not record.is_new
        assert not record.is_updated
        assert not record.is_trashed

    @pytest.mark.asyncio
    async def test_load_uses_current_name(self, manager):
        _, _, saved = self.make(manager, "note1", "hello")
        await saved.save()

        _, mapper, lifecycle = self.make(manager, "note1")
        await lifecycle.load()

        assert mapper.body == "hello"

    @pytest.mark.asyncio
    async def test_load_without_name(self, manager):
        _, _, lifecycle = self.make(manager)

        with pytest.raises(MissingMachineNameError):
            await lifecycle.load()

    @pytest.mark.asyncio
    async def test_load_missing(self, manager):
        _, _, lifecycle = self.make(manager)

        with pytest.raises(CantFindEntityError) as exc_info:
            await lifecycle.load("nothing")

        assert exc_info.value.collection == "notes"
        assert exc_info.value.machine_name == "nothing"

    @pytest.mark.asyncio
    async def test_soft_delete(self, manager, store):
        record, _, lifecycle = self.make(manager, "note1", "hello")
        await lifecycle.save()

        await lifecycle.delete(by="user:alice")

        assert record.is_trashed
        assert store.get_all_documents("notes") == []
        trash = store.get_all_documents("trash")
        assert len(trash) == 1
        assert trash[0]["_id"] == record.id
        assert trash[0]["collection"] == "notes"
        assert trash[0]["machineName"] == "note1"
        assert trash[0]["doc"]["body"] == "hello"
        assert "_id" not in trash[0]["doc"]
        assert "machineName" not in trash[0]["doc"]

    @pytest.mark.asyncio
    async def test_soft_delete_reloads_stale_record(self, manager, store):
        """A modified in-memory record is trashed in its stored state."""
        _, mapper, lifecycle = self.make(manager, "note1", "stored")
        await lifecycle.save()

        _, stale_mapper, stale = self.make(manager, "note1", "unsaved")
        await stale.delete()

        assert stale_mapper.body == "stored"
        assert store.get_all_documents("trash")[0]["doc"]["body"] == "stored"

    @pytest.mark.asyncio
    async def test_soft_delete_of_unknown_record(self, manager):
        _, _, lifecycle = self.make(manager, "ghost")

        with pytest.raises(CantFindEntityError):
            await lifecycle.delete()

    @pytest.mark.asyncio
    async def test_delete_without_name(self, manager):
        _, _, lifecycle = self.make(manager)

        with pytest.raises(MissingMachineNameError):
            await lifecycle.delete()

    @pytest.mark.asyncio
    async def test_load_from_trash(self, manager):
        _, _, lifecycle = self.make(manager, "note1", "hello")
        await lifecycle.save()
        await lifecycle.delete()

        record, mapper, loaded = self.make(manager)
        await loaded.load("note1")

        assert record.is_trashed
        assert record.machine_name == "note1"
        assert mapper.body == "hello"

    @pytest.mark.asyncio
    async def test_delete_trashed_is_permanent(self, manager, store):
        record, _, lifecycle = self.make(manager, "note1", "hello")
        await lifecycle.save()
        await lifecycle.delete()

        await lifecycle.delete()

        assert not record.is_trashed
        assert record.is_new
        assert store.get_all_documents("notes") == []
        assert store.get_all_documents("trash") == []

        _, _, fresh = self.make(manager)
        with pytest.raises(CantFindEntityError):
            await fresh.load("note1")

    @pytest.mark.asyncio
    async def test_delete_fresh_handle_of_trashed_record(self, manager, store):
        """A new handle for a name found only in the trash removes it for good."""
        _, _, lifecycle = self.make(manager, "note1", "hello")
        await lifecycle.save()
        await lifecycle.delete()

        record, _, fresh = self.make(manager, "note1")
        await fresh.delete()

        assert store.get_all_documents("trash") == []
        assert store.get_all_documents("notes") == []
        assert not record.is_trashed
        assert record.is_new

    @pytest.mark.asyncio
    async def test_permanent_delete_skips_trash(self, manager, store):
        _, _, lifecycle = self.make(manager, "note1")
        await lifecycle.save()

        await lifecycle.delete(permanently=True)

        assert store.get_all_documents("notes") == []
        assert store.get_all_documents("trash") == []

    @pytest.mark.asyncio
    async def test_restore_by_saving(self, manager, store):
        _, _, lifecycle = self.make(manager, "note1", "hello")
        await lifecycle.save()
        await lifecycle.delete()

        record, _, restored = self.make(manager)
        await restored.load("note1")
        await restored.save()

        assert not record.is_trashed
        assert store.get_all_documents("trash") == []
        docs = store.get_all_documents("notes")
        assert len(docs) == 1
        assert docs[0]["machineName"] == "note1"
        assert docs[0]["body"] == "hello"

    @pytest.mark.asyncio
    async def test_restore_blocked_by_new_live_record(self, manager, store):
        """A trashed record cannot be restored over a live namesake."""
        _, _, lifecycle = self.make(manager, "note1", "old")
        await lifecycle.save()
        await lifecycle.delete()
        _, _, replacement = self.make(manager, "note1", "new")
        await replacement.save()

        _, _, restored = self.make(manager)
        # The live document wins the lookup; load the trash entry directly.
        trash = store.get_all_documents("trash")[0]
        await restored.set_doc(dict(trash["doc"], _id=trash["_id"], machineName="note1"))
        restored.record.is_trashed = True

        with pytest.raises(MachineNameExistsError):
            await restored.save()

        assert len(store.get_all_documents("trash")) == 1
