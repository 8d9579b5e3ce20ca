"""Tests for assignment CRUD, view modes and library-wide operations on SyllabusManager."""
import asyncio
import gc
import json

import pytest

from local_host import LocalLibrary
from syllabus_data.config import SYLLABUS_DATA_KEY
from syllabus_data.errors import InvalidSettingsError, ItemNotFoundError
from syllabus_data.manager import SyllabusManager


def _stored(library: LocalLibrary, item_id: int) -> dict:
    return json.loads(library.items_by_id[item_id].extra.get(SYLLABUS_DATA_KEY, "{}"))


@pytest.mark.asyncio
async def test_add_then_remove_leaves_no_collection_key(library: LocalLibrary, manager: SyllabusManager) -> None:
    """Removing the last assignment of collection 7 deletes the "7" key."""
    await manager.add_assignment(10, 3, class_number=1)
    assignment = await manager.add_assignment(10, 7, priority="essential", class_instruction="Read ch. 2")

    assert "7" in _stored(library, 10)

    assert await manager.remove_assignment_by_id(10, 7, assignment.id)

    stored = _stored(library, 10)
    assert "7" not in stored
    assert "3" in stored
    assert manager.get_item_syllabus_data(10).get(7) is None


@pytest.mark.asyncio
async def test_added_assignment_is_persisted(library: LocalLibrary, manager: SyllabusManager) -> None:
    assignment = await manager.add_assignment(11, 3, class_number=2, priority="essential", class_instruction="Ch. 1")

    assert _stored(library, 11) == {"3": [assignment.to_json_dict()]}
    assert manager.get_item_assignments(11, 3) == [assignment]
    assert library.items_by_id[11].version == 1


@pytest.mark.asyncio
async def test_empty_assignment_is_not_written(library: LocalLibrary, manager: SyllabusManager) -> None:
    assert await manager.add_assignment(10, 3, class_instruction="   ") is None
    assert SYLLABUS_DATA_KEY not in library.items_by_id[10].extra


@pytest.mark.asyncio
async def test_invalid_and_unknown_targets_raise(manager: SyllabusManager) -> None:
    with pytest.raises(InvalidSettingsError):
        await manager.add_assignment(10, 3, class_number=0)
    with pytest.raises(ItemNotFoundError):
        await manager.add_assignment(999, 3, class_number=1)


@pytest.mark.asyncio
async def test_update_clears_fields_and_removes_empty_assignment(library: LocalLibrary, manager: SyllabusManager) -> None:
    assignment = await manager.add_assignment(10, 3, class_number=1, priority="essential")

    updated = await manager.update_assignment(10, 3, assignment.id, priority=None, class_instruction="Skim")
    assert updated.id == assignment.id
    assert updated.priority is None
    assert updated.class_instruction == "Skim"
    assert manager.get_item_assignments(10, 3) == [updated]

    removed = await manager.update_assignment(10, 3, assignment.id, class_number=None, class_instruction="")
    assert removed is None
    assert "3" not in _stored(library, 10)


@pytest.mark.asyncio
async def test_update_unknown_assignment_is_a_no_op(library: LocalLibrary, manager: SyllabusManager) -> None:
    await manager.add_assignment(10, 3, class_number=1)
    version = library.items_by_id[10].version

    assert await manager.update_assignment(10, 3, "assignment-missing", class_number=2) is None
    assert library.items_by_id[10].version == version


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(manager: SyllabusManager) -> None:
    assignment = await manager.add_assignment(10, 3, class_number=1)

    with pytest.raises(InvalidSettingsError):
        await manager.update_assignment(10, 3, assignment.id, id="assignment-other")


@pytest.mark.asyncio
async def test_remove_unknown_assignment(manager: SyllabusManager) -> None:
    assert not await manager.remove_assignment_by_id(10, 3, "assignment-missing")
    assert not await manager.remove_all_assignments(10, 3)


@pytest.mark.asyncio
async def test_remove_all_assignments(library: LocalLibrary, manager: SyllabusManager) -> None:
    await manager.add_assignment(12, 3, class_number=1)
    await manager.add_assignment(12, 3, class_number=2)
    await manager.add_assignment(12, 7, class_number=1)

    assert await manager.remove_all_assignments(12, 3)
    assert list(_stored(library, 12)) == ["7"]


@pytest.mark.asyncio
async def test_duplicate_assignment(manager: SyllabusManager) -> None:
    first = await manager.add_assignment(10, 3, class_number=1, priority="optional")
    last = await manager.add_assignment(10, 3, class_number=5)

    copy = await manager.duplicate_assignment(10, 3, first.id)

    assignments = manager.get_item_assignments(10, 3)
    assert [a.id for a in assignments] == [first.id, copy.id, last.id]
    assert copy.id != first.id
    assert (copy.class_number, copy.priority) == (1, "optional")
    assert await manager.duplicate_assignment(10, 3, "assignment-missing") is None


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_item_are_serialised(manager: SyllabusManager) -> None:
    results = await asyncio.gather(*(manager.add_assignment(10, 3, class_number=n) for n in range(1, 6)))

    stored = manager.get_item_assignments(10, 3)
    assert sorted(a.class_number for a in stored) == [1, 2, 3, 4, 5]
    assert {a.id for a in stored} == {a.id for a in results}


@pytest.mark.asyncio
async def test_legacy_data_is_migrated_on_first_read(library: LocalLibrary, manager: SyllabusManager) -> None:
    library.items_by_id[11].extra[SYLLABUS_DATA_KEY] = json.dumps({"3": {"classNumber": 4, "priority": "optional"}})

    [assignment] = manager.get_item_assignments(11, 3)
    await manager.cache.wait_for_pending_writes()

    assert _stored(library, 11) == {"3": [assignment.to_json_dict()]}


@pytest.mark.asyncio
async def test_first_edit_of_legacy_item_survives_migration(library: LocalLibrary, manager: SyllabusManager) -> None:
    """The background migration write must not overwrite an edit made on the same read."""
    library.items_by_id[10].extra[SYLLABUS_DATA_KEY] = json.dumps({"3": {"classNumber": 1, "priority": "essential"}})

    added = await manager.add_assignment(10, 3, class_number=2)
    await manager.cache.wait_for_pending_writes()

    stored = _stored(library, 10)["3"]
    assert [(entry["classNumber"], entry.get("priority")) for entry in stored] == [(1, "essential"), (2, None)]
    assert stored[1]["id"] == added.id


@pytest.mark.asyncio
async def test_removed_legacy_assignment_stays_removed(library: LocalLibrary, manager: SyllabusManager) -> None:
    library.items_by_id[10].extra[SYLLABUS_DATA_KEY] = json.dumps({"3": {"classNumber": 1}})

    [legacy] = manager.get_item_assignments(10, 3)
    assert await manager.remove_assignment_by_id(10, 3, legacy.id)
    await manager.cache.wait_for_pending_writes()

    assert _stored(library, 10) == {}
    assert manager.get_item_assignments(10, 3) == []


@pytest.mark.asyncio
async def test_item_locks_are_released_after_writes(manager: SyllabusManager) -> None:
    await asyncio.gather(*(manager.add_assignment(item_id, 3, class_number=1) for item_id in (10, 11, 12)))
    gc.collect()

    assert len(manager._item_locks) == 0


@pytest.mark.asyncio
async def test_debounced_edits_keep_the_last_value(manager: SyllabusManager) -> None:
    for title in ("F", "Fo", "Foundations"):
        manager.schedule_class_title(3, 1, title)
    manager.schedule_collection_description(3, "Draft")
    manager.schedule_collection_description(3, "Classical theory")

    await asyncio.sleep(0.05)

    assert manager.settings.get_class_title(3, 1) == "Foundations"
    assert manager.settings.get_collection_description(3) == "Classical theory"


@pytest.mark.asyncio
async def test_shutdown_flushes_scheduled_writes(manager: SyllabusManager) -> None:
    assignment = await manager.add_assignment(10, 3, class_number=1)
    manager.config.debounce_delay = 10
    manager.debouncer.delay = 10

    manager.schedule_assignment_update(10, 3, assignment.id, class_instruction="Read closely")
    manager.schedule_class_description(3, 1, "Opening week")
    await manager.shutdown()

    assert manager.get_item_assignments(10, 3)[0].class_instruction == "Read closely"
    assert manager.settings.get_class_description(3, 1) == "Opening week"


def test_view_modes_are_per_collection(library: LocalLibrary, manager: SyllabusManager) -> None:
    assert not manager.get_compact_mode(3)

    manager.set_compact_mode(3, True)
    manager.set_reader_mode(7, True)

    assert manager.get_compact_mode(3)
    assert not manager.get_reader_mode(3)
    assert manager.get_reader_mode(7)
    assert not manager.get_compact_mode(7)
    assert json.loads(library.prefs.get(manager.view_modes_key))["1:SOC101AA"] == {"compact": True, "reader": False}


def test_syllabi_lists_collections_with_settings(manager: SyllabusManager) -> None:
    assert manager.get_syllabi() == []

    manager.settings.set_collection_description(3, "Classical theory")
    [summary] = manager.get_syllabi()

    assert summary.collection.id == 3
    assert summary.settings.description == "Classical theory"
    assert summary.item_ids == [10, 11, 12, 14]
