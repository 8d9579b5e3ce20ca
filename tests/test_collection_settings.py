"""Tests for the collection settings dictionary, priorities, classes and import/export."""
import json
from datetime import date

import pytest

from local_host import LocalLibrary
from syllabus_data.collection_settings import pluralize
from syllabus_data.errors import CollectionNotFoundError, InvalidSettingsError
from syllabus_data.manager import SyllabusManager
from syllabus_data.models import DEFAULT_PRIORITIES, UNPRIORITIZED_ORDER, CustomPriority

SEMINAR = CustomPriority(id="x", name="Seminar prep", color="#123456", order=1)


def _stored(library: LocalLibrary, manager: SyllabusManager) -> dict:
    return json.loads(library.prefs.get(manager.settings.pref_key))


def test_settings_are_keyed_by_library_and_collection_key(library: LocalLibrary, manager: SyllabusManager) -> None:
    manager.settings.set_collection_description(3, "  Classical social theory ")

    assert _stored(library, manager) == {"1:SOC101AA": {"description": "Classical social theory"}}
    assert manager.settings.get_collection_description(3) == "Classical social theory"
    assert manager.settings.get_collection_description((1, "SOC101AA")) == "Classical social theory"
    assert manager.settings.get_collection_description(7) == ""


def test_writes_to_unknown_collection_raise(manager: SyllabusManager) -> None:
    with pytest.raises(CollectionNotFoundError):
        manager.settings.set_collection_description(999, "Nope")

    # Reads degrade to defaults
    assert manager.settings.get_settings(999).is_empty()


def test_malformed_dictionary_reads_as_empty(library: LocalLibrary, manager: SyllabusManager) -> None:
    library.prefs.values[manager.settings.pref_key] = "{not json"

    assert manager.settings.get_all_settings() == {}
    assert manager.settings.get_nomenclature(3) == "class"


def test_default_priorities(manager: SyllabusManager) -> None:
    priorities = manager.settings.get_priorities_for_collection(3)

    assert [p.id for p in priorities] == ["course-info", "essential", "recommended", "optional"]
    assert [p.order for p in priorities] == [1, 2, 3, 4]
    assert manager.settings.get_priority_color_for_collection(3, "optional") == "#AAA"
    assert manager.settings.get_priority_label_for_collection(3, "course-info") == "Course Information"


def test_custom_priority_resolution(manager: SyllabusManager) -> None:
    manager.settings.set_priorities(3, [SEMINAR])

    assert manager.settings.get_priority_order_for_collection(3, "x") == 1
    assert manager.settings.get_priority_color_for_collection(3, "x") == "#123456"
    assert manager.settings.get_priority_label_for_collection(3, "x") == "Seminar prep"
    # Built-in IDs still resolve through the defaults
    assert manager.settings.get_priority_order_for_collection(3, "essential") == 2
    # Other collections are unaffected
    assert manager.settings.get_priority_order_for_collection(7, "x") == UNPRIORITIZED_ORDER


def test_unknown_and_missing_priorities_never_raise(manager: SyllabusManager) -> None:
    assert manager.settings.get_priority_order_for_collection(3, None) == UNPRIORITIZED_ORDER
    assert manager.settings.get_priority_order_for_collection(3, "nope") == UNPRIORITIZED_ORDER
    assert manager.settings.get_priority_color_for_collection(3, "nope") is None
    assert manager.settings.get_priority_label_for_collection(3, "nope") == "nope"
    assert manager.settings.get_priority_label_for_collection(3, None) == ""


def test_priorities_are_sorted_by_order(manager: SyllabusManager) -> None:
    later = CustomPriority(id="later", name="Later", color="#000", order=9)
    manager.settings.set_priorities(3, [later, SEMINAR])

    assert [p.id for p in manager.settings.get_priorities_for_collection(3)] == ["x", "later"]


def test_add_update_and_delete_priority(manager: SyllabusManager) -> None:
    manager.settings.add_priority(3, SEMINAR)
    assert "x" in [p.id for p in manager.settings.get_priorities_for_collection(3)]
    assert manager.settings.get_priority_order_for_collection(3, "x") == 1

    with pytest.raises(InvalidSettingsError):
        manager.settings.add_priority(3, SEMINAR)

    updated = manager.settings.update_priority(3, "x", name="Prep", order=7)
    assert updated.name == "Prep"
    assert manager.settings.get_priority_order_for_collection(3, "x") == 7

    with pytest.raises(InvalidSettingsError):
        manager.settings.update_priority(3, "x", color="purple")
    with pytest.raises(InvalidSettingsError):
        manager.settings.update_priority(3, "missing", name="Missing")

    manager.settings.delete_priority(3, "x")
    assert "x" not in [p.id for p in manager.settings.get_priorities_for_collection(3)]


def test_delete_priority_materialises_defaults(library: LocalLibrary, manager: SyllabusManager) -> None:
    manager.settings.delete_priority(3, "optional")

    stored = _stored(library, manager)["1:SOC101AA"]["priorities"]
    assert [p["id"] for p in stored] == ["course-info", "essential", "recommended"]


def test_last_priority_cannot_be_deleted(manager: SyllabusManager) -> None:
    manager.settings.set_priorities(3, [SEMINAR])

    with pytest.raises(InvalidSettingsError):
        manager.settings.delete_priority(3, "x")

    assert [p.id for p in manager.settings.get_priorities_for_collection(3)] == ["x"]


def test_empty_priority_list_restores_defaults(manager: SyllabusManager) -> None:
    manager.settings.set_priorities(3, [SEMINAR])
    manager.settings.set_priorities(3, [])

    assert manager.settings.get_priorities_for_collection(3) == DEFAULT_PRIORITIES


@pytest.mark.parametrize("noun, plural", [
    ("class", "classes"),
    ("week", "weeks"),
    ("study", "studies"),
    ("day", "days"),
    ("batch", "batches"),
])
def test_pluralize(noun: str, plural: str) -> None:
    assert pluralize(noun) == plural


def test_nomenclature(manager: SyllabusManager) -> None:
    forms = manager.settings.get_nomenclature_formatted(3)
    assert (forms.singular, forms.plural, forms.singular_capitalized, forms.plural_capitalized) == \
        ("class", "classes", "Class", "Classes")

    manager.settings.set_nomenclature(3, "  Week ")
    forms = manager.settings.get_nomenclature_formatted(3)
    assert forms.singular == "week"
    assert forms.plural_capitalized == "Weeks"

    manager.settings.set_nomenclature(3, "")
    assert manager.settings.get_nomenclature(3) == "class"


def test_locked(manager: SyllabusManager) -> None:
    assert not manager.settings.get_locked(3)
    manager.settings.set_locked(3, True)
    assert manager.settings.get_locked(3)
    manager.settings.set_locked(3, False)
    assert manager.settings.get_settings(3).locked is None


def test_class_metadata_is_pruned_when_empty(library: LocalLibrary, manager: SyllabusManager) -> None:
    manager.settings.set_class_title(3, 2, "  Durkheim and solidarity ")
    manager.settings.set_class_description(3, 2, "Mechanical vs organic")

    assert manager.settings.get_class_title(3, 2) == "Durkheim and solidarity"
    assert _stored(library, manager)["1:SOC101AA"]["classes"]["2"]["description"] == "Mechanical vs organic"

    manager.settings.set_class_title(3, 2, "")
    manager.settings.set_class_description(3, 2, "   ")

    assert manager.settings.get_class_metadata(3, 2) is None
    assert "classes" not in _stored(library, manager)["1:SOC101AA"]


def test_class_reading_date(manager: SyllabusManager) -> None:
    manager.settings.set_class_reading_date(3, 1, "2026-02-03")
    assert manager.settings.get_class_reading_date(3, 1) == date(2026, 2, 3)

    manager.settings.set_class_reading_date(3, 1, date(2026, 2, 10))
    assert manager.settings.get_class_metadata(3, 1).reading_date == "2026-02-10"

    with pytest.raises(InvalidSettingsError):
        manager.settings.set_class_reading_date(3, 1, "next tuesday")

    manager.settings.set_class_reading_date(3, 1, None)
    assert manager.settings.get_class_reading_date(3, 1) is None


def test_class_status(manager: SyllabusManager) -> None:
    manager.settings.set_class_status(3, 4, "done")
    assert manager.settings.get_class_status(3, 4) == "done"
    manager.settings.set_class_status(3, 4, None)
    assert manager.settings.get_class_status(3, 4) is None


def test_item_order_drops_duplicates(manager: SyllabusManager) -> None:
    manager.settings.set_class_item_order(3, 1, ["assignment-b", "assignment-a", "assignment-b", ""])

    assert manager.settings.get_class_item_order(3, 1) == ["assignment-b", "assignment-a"]
    assert manager.settings.get_class_item_order(3, None) == []


def test_create_and_delete_class_are_idempotent(manager: SyllabusManager) -> None:
    manager.settings.set_class_title(3, 2, "Kept")
    manager.settings.create_additional_class(3, 2)
    manager.settings.create_additional_class(3, 4)
    manager.settings.create_additional_class(3, 4)

    assert manager.settings.get_class_title(3, 2) == "Kept"
    assert manager.settings.get_class_numbers(3) == [2, 4]

    manager.settings.delete_class(3, 4)
    manager.settings.delete_class(3, 4)

    assert manager.settings.get_class_numbers(3) == [2]


def test_created_class_survives_clearing_its_fields(library: LocalLibrary, manager: SyllabusManager) -> None:
    manager.settings.create_additional_class(3, 5)
    manager.settings.set_class_title(3, 5, "Review week")
    manager.settings.set_class_title(3, 5, "")

    assert manager.settings.get_class_numbers(3) == [5]
    assert manager.get_full_class_number_range(3) == [1, 2, 3, 4, 5]
    assert _stored(library, manager)["1:SOC101AA"]["classes"]["5"] == {"pinned": True}

    manager.settings.delete_class(3, 5)
    assert manager.get_full_class_number_range(3) == []


@pytest.mark.asyncio
async def test_cleanup_removes_orphaned_manual_order_ids(manager: SyllabusManager) -> None:
    kept = await manager.add_assignment(10, 3, class_number=1)
    gone = await manager.add_assignment(11, 3, class_number=1)
    manager.settings.set_class_item_order(3, 1, [gone.id, kept.id, "assignment-missing"])
    await manager.remove_assignment_by_id(11, 3, gone.id)

    assert manager.cleanup_settings() == 2
    assert manager.settings.get_class_item_order(3, 1) == [kept.id]
    assert manager.cleanup_settings() == 0


def test_export_then_import_into_another_collection(manager: SyllabusManager) -> None:
    manager.settings.set_collection_description(3, "Classical theory")
    manager.settings.set_nomenclature(3, "week")
    manager.settings.set_priorities(3, [SEMINAR])
    manager.settings.set_class_title(3, 1, "Foundations")

    exported = manager.settings.export_metadata(3, title="Intro to Sociology")
    imported = manager.settings.import_metadata(7, exported.model_dump_json(by_alias=True))

    assert exported.title == "Intro to Sociology"
    assert imported == manager.settings.get_settings(3)
    assert manager.settings.get_nomenclature(7) == "week"


def test_import_merges_classes_field_by_field(manager: SyllabusManager) -> None:
    manager.settings.set_class_title(3, 1, "Old title")
    manager.settings.set_class_description(3, 1, "Kept description")
    manager.settings.set_collection_description(3, "Kept collection description")

    manager.settings.import_metadata(3, {"classes": {"1": {"title": "New title"}, "2": {"readingDate": "2026-03-01"}}})

    first = manager.settings.get_class_metadata(3, 1)
    assert first.title == "New title"
    assert first.description == "Kept description"
    assert manager.settings.get_class_reading_date(3, 2) == date(2026, 3, 1)
    assert manager.settings.get_collection_description(3) == "Kept collection description"


@pytest.mark.parametrize("payload", ["{broken", "[1, 2]", '{"priorities": [{"id": "x"}]}'])
def test_import_rejects_invalid_payloads(manager: SyllabusManager, payload: str) -> None:
    with pytest.raises(InvalidSettingsError):
        manager.settings.import_metadata(3, payload)
