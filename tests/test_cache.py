"""Tests for the host cache: LRU bounds, invalidation on notifier events and migration write-back."""
import json

import pytest

from local_host import LocalLibrary
from syllabus_data.cache import NO_SYLLABUS_DATA, HostCache, LRUCache
from syllabus_data.config import SYLLABUS_DATA_KEY
from syllabus_data.models import Assignment, VIEW_MODES_ADAPTER


def _store_raw(library: LocalLibrary, item_id: int, payload: dict) -> None:
    library.items_by_id[item_id].extra[SYLLABUS_DATA_KEY] = json.dumps(payload)


def test_lru_evicts_least_recently_used() -> None:
    cache: LRUCache[str, int] = LRUCache(2)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.get("a")
    cache.put("c", 3)

    assert "a" in cache
    assert "b" not in cache
    assert len(cache) == 2


def test_item_without_data_is_cached_as_absent(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.initialize()

    assert cache.get_item_syllabus_data(10) is None
    assert cache._syllabus_data.get(10) is NO_SYLLABUS_DATA

    # Cached: a silent change is not seen until the host reports it
    _store_raw(library, 10, {"3": [{"id": "assignment-a", "classNumber": 1}]})
    assert cache.get_item_syllabus_data(10) is None

    library.notifier.trigger("modify", "item", [10])
    assert cache.get_item_syllabus_data(10).get(3) == [Assignment(id="assignment-a", class_number=1)]


def test_cache_coherence_after_modify_event(library: LocalLibrary) -> None:
    """A simulated item-modify event makes the next read see the new payload."""
    cache = HostCache(library.host)
    cache.initialize()
    _store_raw(library, 11, {"3": [{"id": "assignment-a", "priority": "essential"}]})
    assert cache.get_item_syllabus_data(11).get(3)[0].priority == "essential"

    _store_raw(library, 11, {"3": [{"id": "assignment-a", "priority": "optional"}]})
    library.notifier.trigger("modify", "item", [11])

    assert cache.get_item_syllabus_data(11).get(3)[0].priority == "optional"


def test_returned_maps_are_copies(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    _store_raw(library, 10, {"3": [{"id": "assignment-a", "classNumber": 1}]})

    data = cache.get_item_syllabus_data(10)
    data.set(3, [])

    assert cache.get_item_syllabus_data(10).get(3) is not None


def test_unknown_item_reads_as_none(library: LocalLibrary) -> None:
    cache = HostCache(library.host)

    assert cache.get_item(999) is None
    assert cache.get_item_syllabus_data(999) is None


def test_malformed_payload_reads_as_none(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    library.items_by_id[12].extra[SYLLABUS_DATA_KEY] = "{broken"

    assert cache.get_item_syllabus_data(12) is None


def test_migration_without_loop_is_in_memory_only(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    _store_raw(library, 10, {"3": {"classNumber": 2}})

    data = cache.get_item_syllabus_data(10)

    assert data.get(3)[0].class_number == 2
    assert json.loads(library.items_by_id[10].extra[SYLLABUS_DATA_KEY]) == {"3": {"classNumber": 2}}


@pytest.mark.asyncio
async def test_migration_is_written_back(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.initialize()
    _store_raw(library, 10, {"3": {"classNumber": 2}, "7": {}})
    version = library.items_by_id[10].version

    data = cache.get_item_syllabus_data(10)
    await cache.wait_for_pending_writes()

    stored = json.loads(library.items_by_id[10].extra[SYLLABUS_DATA_KEY])
    assert list(stored) == ["3"]
    assert stored["3"][0]["id"] == data.get(3)[0].id
    assert library.items_by_id[10].version == version + 1
    # The save event dropped the entry; a fresh read agrees with what was written
    assert cache.get_item_syllabus_data(10) == data


def test_preferences_are_cached_until_changed(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    library.prefs.set("viewModes", json.dumps({"1:SOC101AA": {"compact": True}}))

    modes = cache.get_pref("viewModes", VIEW_MODES_ADAPTER)
    assert modes["1:SOC101AA"].compact

    library.prefs.values["viewModes"] = "{}"
    assert cache.get_pref("viewModes", VIEW_MODES_ADAPTER)["1:SOC101AA"].compact

    library.prefs.set("viewModes", json.dumps({"1:SOC101AA": {"reader": True}}))
    modes = cache.get_pref("viewModes", VIEW_MODES_ADAPTER)
    assert not modes["1:SOC101AA"].compact
    assert modes["1:SOC101AA"].reader


def test_invalid_preference_is_cached_as_none(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    library.prefs.values["viewModes"] = json.dumps({"1:SOC101AA": {"compact": "sometimes"}})

    assert cache.get_pref("viewModes", VIEW_MODES_ADAPTER) is None
    assert cache.get_pref("raw") is None


def test_collections_by_id_and_key(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.initialize()

    by_id = cache.get_collection(3)
    by_key = cache.get_collection((1, "SOC101AA"))

    assert by_id is by_key
    assert by_id.name == "Intro to Sociology"
    assert cache.get_collection(999) is None
    assert cache.get_collection((1, "MISSING1")) is None


def test_deleted_collection_is_invalidated(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.initialize()
    assert cache.get_collection(7) is not None

    library.delete_collection(7)

    assert cache.get_collection(7) is None
    assert cache.get_collection((1, "METHODS1")) is None


def test_stale_index_entry_is_dropped(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.get_collection(3)
    cache._collections.pop("1:SOC101AA")

    assert cache.get_collection(3).key == "SOC101AA"
    assert cache._collection_index[3] == "1:SOC101AA"


def test_invalidate_collection_by_key(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    cache.get_collection(3)

    cache.invalidate_collection_by_key(1, "SOC101AA")

    assert 3 not in cache._collection_index
    assert cache.get_collection((1, "SOC101AA")).id == 3


def test_shutdown_releases_observers(library: LocalLibrary) -> None:
    cache = HostCache(library.host)
    before = library.notifier.observer_count

    cache.initialize()
    cache.initialize()
    cache.get_pref("anything")
    assert library.notifier.observer_count == before + 1
    assert library.prefs.observer_count == 1

    cache.shutdown()

    assert library.notifier.observer_count == before
    assert library.prefs.observer_count == 0
