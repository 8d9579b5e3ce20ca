"""
Store factories for the data syllabus views display.

Each factory binds a snapshot function and an event filter to one scope (an
item, a collection, a class or the whole library). Snapshots contain plain
JSON data only.
"""
from __future__ import annotations

import typing as t

from syllabus_data.host import (EVENT_ADD, EVENT_DELETE, EVENT_MODIFY, EVENT_REFRESH, TYPE_COLLECTION,
                                TYPE_COLLECTION_ITEM, TYPE_ITEM, TYPE_SETTING, TYPE_TAB)
from syllabus_data.manager import SyllabusManager
from .stores import ExternalStore, make_store


def _collection_changed(collection_id: int) -> t.Callable[..., bool]:
    def matches(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return type == TYPE_COLLECTION and collection_id in ids and event in (EVENT_MODIFY, EVENT_REFRESH)
    return matches


def _setting_changed(pref_key: str) -> t.Callable[..., bool]:
    def matches(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return type == TYPE_SETTING and (extra_data or {}).get("pref") == pref_key
    return matches


def _any_of(*filters: t.Callable[..., bool]) -> t.Callable[..., bool]:
    def matches(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return any(f(event, type, ids, extra_data) for f in filters)
    return matches


def _notifier_options(manager: SyllabusManager, *types: str) -> dict[str, t.Any]:
    return {"notifier": manager.host.notifier, "notifier_types": types}


def collection_items_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    """IDs of the regular items in a collection."""
    def snapshot() -> list[dict[str, int]]:
        collection = manager.cache.get_collection(collection_id)
        if collection is None:
            return []
        return [
            {"id": item.id, "version": item.version}
            for item in manager.host.collections.get_child_items(collection)
            if item.is_regular_item()
        ]

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        if type == TYPE_COLLECTION_ITEM:
            return True
        if type == TYPE_ITEM and event in (EVENT_ADD, EVENT_MODIFY, EVENT_DELETE):
            return True
        return _collection_changed(collection_id)(event, type, ids, extra_data)

    return make_store(
        ("collection-items", collection_id), snapshot, relevant,
        **_notifier_options(manager, TYPE_COLLECTION_ITEM, TYPE_ITEM, TYPE_COLLECTION),
    )


def item_assignments_store(manager: SyllabusManager, item_id: t.Optional[int], collection_id: t.Optional[int]) -> ExternalStore:
    """Sorted assignments of one item in one collection."""
    def snapshot() -> dict[str, t.Any]:
        if not item_id or not collection_id:
            return {"assignments": []}
        item = manager.cache.get_item(item_id)
        if item is None or not item.is_regular_item():
            return {"assignments": []}
        assignments = manager.get_item_assignments(item, collection_id, sort=True)
        return {"assignments": [a.to_json_dict() for a in assignments]}

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        if type == TYPE_ITEM:
            return item_id in ids and event in (EVENT_MODIFY, EVENT_DELETE)
        return type == TYPE_COLLECTION_ITEM

    options: dict[str, t.Any] = {}
    if item_id and collection_id:
        options = _notifier_options(manager, TYPE_ITEM, TYPE_COLLECTION_ITEM)
        options.update(prefs=manager.host.prefs, pref_keys=[manager.settings.pref_key])
    return make_store(("item-assignments", item_id, collection_id), snapshot, relevant, **options)


def item_store(manager: SyllabusManager, item_id: int) -> ExternalStore:
    """Version of an item; changes whenever the item is saved."""
    def snapshot() -> dict[str, t.Any]:
        item = manager.cache.get_item(item_id)
        return {"id": item_id, "version": item.version if item is not None else None}

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return type == TYPE_ITEM and item_id in ids and event in (EVENT_MODIFY, EVENT_DELETE)

    return make_store(("item", item_id), snapshot, relevant, **_notifier_options(manager, TYPE_ITEM))


def syllabus_metadata_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    """Settings of one collection."""
    def snapshot() -> dict[str, t.Any]:
        return manager.settings.get_settings(collection_id).to_json_dict()

    relevant = _any_of(_setting_changed(manager.settings.pref_key), _collection_changed(collection_id))
    return make_store(
        ("syllabus-metadata", collection_id), snapshot, relevant,
        **_notifier_options(manager, TYPE_SETTING, TYPE_COLLECTION),
    )


def class_metadata_store(manager: SyllabusManager, collection_id: int, class_number: int) -> ExternalStore:
    """Metadata of one class, ``null`` when the class has none."""
    def snapshot() -> t.Optional[dict[str, t.Any]]:
        entry = manager.settings.get_class_metadata(collection_id, class_number)
        return entry.model_dump(by_alias=True, exclude_none=True) if entry is not None else None

    return make_store(
        ("class-metadata", collection_id, class_number), snapshot, _setting_changed(manager.settings.pref_key),
        **_notifier_options(manager, TYPE_SETTING),
    )


def collection_title_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    def snapshot() -> str:
        collection = manager.cache.get_collection(collection_id)
        return collection.name if collection is not None else ""

    return make_store(
        ("collection-title", collection_id), snapshot, _collection_changed(collection_id),
        **_notifier_options(manager, TYPE_COLLECTION),
    )


def collection_description_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    def snapshot() -> str:
        return manager.settings.get_collection_description(collection_id)

    return make_store(
        ("collection-description", collection_id), snapshot, _setting_changed(manager.settings.pref_key),
        **_notifier_options(manager, TYPE_SETTING),
    )


def compact_mode_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    return make_store(
        ("compact-mode", collection_id),
        lambda: manager.get_compact_mode(collection_id),
        prefs=manager.host.prefs,
        pref_keys=[manager.view_modes_key],
    )


def reader_mode_store(manager: SyllabusManager, collection_id: int) -> ExternalStore:
    return make_store(
        ("reader-mode", collection_id),
        lambda: manager.get_reader_mode(collection_id),
        prefs=manager.host.prefs,
        pref_keys=[manager.view_modes_key],
    )


def selected_item_ids_store(manager: SyllabusManager) -> ExternalStore:
    """IDs of the items selected in the host, refreshed by polling and item events."""
    def snapshot() -> list[int]:
        selection = manager.host.selection
        if selection is None:
            return []
        return [item.id for item in selection.get_selected_items()]

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return type == TYPE_TAB or (type == TYPE_ITEM and event in (EVENT_MODIFY, EVENT_DELETE))

    return make_store(
        ("selected-items",), snapshot, relevant,
        poll_interval=manager.config.poll_interval,
        **_notifier_options(manager, TYPE_ITEM, TYPE_TAB),
    )


def selected_collection_store(manager: SyllabusManager) -> ExternalStore:
    """ID of the collection selected in the host, or ``null``."""
    def snapshot() -> t.Optional[int]:
        selection = manager.host.selection
        collection = selection.get_selected_collection() if selection is not None else None
        return collection.id if collection is not None else None

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        return type in (TYPE_COLLECTION, TYPE_TAB)

    return make_store(
        ("selected-collection",), snapshot, relevant,
        poll_interval=manager.config.poll_interval,
        **_notifier_options(manager, TYPE_COLLECTION, TYPE_TAB),
    )


def syllabi_store(manager: SyllabusManager) -> ExternalStore:
    """Every collection with syllabus settings, with its settings and item IDs."""
    def snapshot() -> dict[str, t.Any]:
        return {
            "syllabi": [
                {
                    "collectionId": summary.collection.id,
                    "collectionName": summary.collection.name,
                    "metadata": summary.settings.to_json_dict(),
                    "itemIds": summary.item_ids,
                }
                for summary in manager.get_syllabi()
            ]
        }

    def relevant(event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> bool:
        if type == TYPE_SETTING:
            return (extra_data or {}).get("pref") == manager.settings.pref_key
        return type in (TYPE_COLLECTION, TYPE_COLLECTION_ITEM) or (type == TYPE_ITEM and event != EVENT_MODIFY)

    return make_store(
        ("syllabi",), snapshot, relevant,
        **_notifier_options(manager, TYPE_SETTING, TYPE_COLLECTION, TYPE_COLLECTION_ITEM, TYPE_ITEM),
    )
