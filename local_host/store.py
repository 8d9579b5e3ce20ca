# -*- coding: utf-8 -*-
"""
In-memory host library backed by a JSON file.

Implements the item, collection, preference, notifier and selection
interfaces the syllabus engine expects from its host. Every mutation is
announced on the notifier the way a reference manager would announce it, so
caches and reactive stores built on top behave as they would in the real
application.
"""
from __future__ import annotations

import itertools
import json
import logging
import secrets
import string
import typing as t
from dataclasses import asdict
from pathlib import Path

from syllabus_data.host import (EVENT_ADD, EVENT_DELETE, EVENT_MODIFY, TYPE_COLLECTION, TYPE_COLLECTION_ITEM,
                                TYPE_ITEM, TYPE_SETTING, Host, NotifierObserver, PrefCallback)
from .models import Collection, Item

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_uppercase + string.digits


def generate_key() -> str:
    """Return an 8-character object key."""
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(8))


class LocalNotifier:
    """Synchronous notifier bus delivering events in observer registration order."""

    def __init__(self) -> None:
        self._observers: dict[int, tuple[NotifierObserver, tuple[str, ...]]] = {}
        self._ids = itertools.count(1)

    def register_observer(self, observer: NotifierObserver, types: t.Sequence[str]) -> int:
        observer_id = next(self._ids)
        self._observers[observer_id] = (observer, tuple(types))
        return observer_id

    def unregister_observer(self, observer_id: int) -> None:
        self._observers.pop(observer_id, None)

    def trigger(self, event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Optional[dict] = None) -> None:
        extra_data = extra_data or {}
        # Observers may unregister while being notified
        for observer_id, (observer, types) in list(self._observers.items()):
            if observer_id in self._observers and type in types:
                observer.notify(event, type, list(ids), extra_data)

    @property
    def observer_count(self) -> int:
        return len(self._observers)


class LocalPreferences:
    def __init__(self, notifier: LocalNotifier, on_change: t.Optional[t.Callable[[], None]] = None) -> None:
        self.values: dict[str, t.Any] = {}
        self._notifier = notifier
        self._observers: dict[int, tuple[str, PrefCallback]] = {}
        self._ids = itertools.count(1)
        self._on_change = on_change

    def get(self, key: str) -> t.Any:
        return self.values.get(key)

    def set(self, key: str, value: t.Any) -> None:
        self.values[key] = value
        if self._on_change:
            self._on_change()
        for observer_id, (observed_key, callback) in list(self._observers.items()):
            if observed_key == key and observer_id in self._observers:
                callback(value)
        self._notifier.trigger(EVENT_MODIFY, TYPE_SETTING, [key], {"pref": key})

    def observe(self, key: str, callback: PrefCallback) -> int:
        observer_id = next(self._ids)
        self._observers[observer_id] = (key, callback)
        return observer_id

    def unobserve(self, observer_id: int) -> None:
        self._observers.pop(observer_id, None)

    @property
    def observer_count(self) -> int:
        return len(self._observers)


class LocalItems:
    def __init__(self, library: "LocalLibrary") -> None:
        self._library = library

    def get_by_id(self, item_id: int) -> t.Optional[Item]:
        item = self._library.items_by_id.get(item_id)
        if item is None or item.deleted:
            return None
        return item

    def get_extra_field(self, item: Item, key: str) -> t.Optional[str]:
        return item.extra.get(key)

    async def set_extra_field(self, item: Item, key: str, value: str) -> None:
        if value:
            item.extra[key] = value
        else:
            item.extra.pop(key, None)

    async def save(self, item: Item) -> None:
        item.version += 1
        self._library.autosave()
        self._library.notifier.trigger(EVENT_MODIFY, TYPE_ITEM, [item.id])


class LocalCollections:
    def __init__(self, library: "LocalLibrary") -> None:
        self._library = library

    def get_by_id(self, collection_id: int) -> t.Optional[Collection]:
        collection = self._library.collections_by_id.get(collection_id)
        if collection is None or collection.deleted:
            return None
        return collection

    def get_by_library_and_key(self, library_id: int, key: str) -> t.Optional[Collection]:
        for collection in self._library.collections_by_id.values():
            if collection.library_id == library_id and collection.key == key and not collection.deleted:
                return collection
        return None

    def get_child_items(self, collection: Collection) -> list[Item]:
        items = (self._library.items.get_by_id(item_id) for item_id in collection.item_ids)
        return [item for item in items if item is not None]

    def get_all(self) -> list[Collection]:
        return [c for c in self._library.collections_by_id.values() if not c.deleted]


class LocalSelection:
    def __init__(self, library: "LocalLibrary") -> None:
        self._library = library
        self.collection_id: t.Optional[int] = None
        self.item_ids: list[int] = []

    def get_selected_collection(self) -> t.Optional[Collection]:
        if self.collection_id is None:
            return None
        return self._library.collections.get_by_id(self.collection_id)

    def get_selected_items(self) -> list[Item]:
        items = (self._library.items.get_by_id(item_id) for item_id in self.item_ids)
        return [item for item in items if item is not None]

    def select(self, collection_id: t.Optional[int] = None, item_ids: t.Sequence[int] = ()) -> None:
        self.collection_id = collection_id
        self.item_ids = list(item_ids)


class LocalLibrary:
    """
    A single-library host with items, collections and preferences.

    When ``path`` is set, every saved item and every preference change is
    written back to that JSON file.
    """

    def __init__(self, library_id: int = 1, path: t.Optional[t.Union[str, Path]] = None) -> None:
        self.library_id = library_id
        self.path = Path(path) if path else None
        self.items_by_id: dict[int, Item] = {}
        self.collections_by_id: dict[int, Collection] = {}
        self._last_id = 0

        self.notifier = LocalNotifier()
        self.prefs = LocalPreferences(self.notifier, on_change=self.autosave)
        self.items = LocalItems(self)
        self.collections = LocalCollections(self)
        self.selection = LocalSelection(self)

    @property
    def host(self) -> Host:
        return Host(
            items=self.items,
            collections=self.collections,
            prefs=self.prefs,
            notifier=self.notifier,
            selection=self.selection,
        )

    # -----------------------------
    # Mutations
    # -----------------------------

    def _allocate_id(self, requested: t.Optional[int] = None) -> int:
        if requested is None:
            requested = self._last_id + 1
        elif requested in self.items_by_id or requested in self.collections_by_id:
            raise ValueError(f"ID already in use: {requested}")
        self._last_id = max(self._last_id, requested)
        return requested

    def add_collection(self, name: str, key: t.Optional[str] = None, id: t.Optional[int] = None) -> Collection:
        collection = Collection(id=self._allocate_id(id), key=key or generate_key(), name=name, library_id=self.library_id)
        self.collections_by_id[collection.id] = collection
        self.autosave()
        self.notifier.trigger(EVENT_ADD, TYPE_COLLECTION, [collection.id])
        return collection

    def rename_collection(self, collection_id: int, name: str) -> None:
        collection = self._require_collection(collection_id)
        collection.name = name
        self.autosave()
        self.notifier.trigger(EVENT_MODIFY, TYPE_COLLECTION, [collection_id])

    def delete_collection(self, collection_id: int) -> None:
        collection = self._require_collection(collection_id)
        collection.deleted = True
        self.autosave()
        self.notifier.trigger(EVENT_DELETE, TYPE_COLLECTION, [collection_id])

    def add_item(
        self,
        title: str,
        item_type: str = "journalArticle",
        collections: t.Sequence[int] = (),
        key: t.Optional[str] = None,
        id: t.Optional[int] = None,
    ) -> Item:
        item = Item(id=self._allocate_id(id), key=key or generate_key(), title=title,
                    library_id=self.library_id, item_type=item_type)
        self.items_by_id[item.id] = item
        self.autosave()
        self.notifier.trigger(EVENT_ADD, TYPE_ITEM, [item.id])
        for collection_id in collections:
            self.add_to_collection(collection_id, item.id)
        return item

    def delete_item(self, item_id: int) -> None:
        item = self.items_by_id.get(item_id)
        if item is None:
            raise KeyError(f"Unknown item: {item_id}")
        item.deleted = True
        self.autosave()
        self.notifier.trigger(EVENT_DELETE, TYPE_ITEM, [item_id])

    def add_to_collection(self, collection_id: int, item_id: int) -> None:
        collection = self._require_collection(collection_id)
        if item_id in collection.item_ids:
            return
        collection.item_ids.append(item_id)
        self.autosave()
        self.notifier.trigger(EVENT_ADD, TYPE_COLLECTION_ITEM, [f"{collection_id}-{item_id}"])

    def remove_from_collection(self, collection_id: int, item_id: int) -> None:
        collection = self._require_collection(collection_id)
        if item_id not in collection.item_ids:
            return
        collection.item_ids.remove(item_id)
        self.autosave()
        self.notifier.trigger(EVENT_DELETE, TYPE_COLLECTION_ITEM, [f"{collection_id}-{item_id}"])

    def _require_collection(self, collection_id: int) -> Collection:
        collection = self.collections.get_by_id(collection_id)
        if collection is None:
            raise KeyError(f"Unknown collection: {collection_id}")
        return collection

    # -----------------------------
    # Persistence
    # -----------------------------

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "libraryId": self.library_id,
            "items": [asdict(item) for item in self.items_by_id.values()],
            "collections": [asdict(collection) for collection in self.collections_by_id.values()],
            "prefs": dict(self.prefs.values),
        }

    def autosave(self) -> None:
        if self.path is not None:
            self.dump(self.path)

    def dump(self, path: t.Union[str, Path]) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    @classmethod
    def from_dict(cls, data: t.Mapping[str, t.Any], path: t.Optional[t.Union[str, Path]] = None) -> "LocalLibrary":
        library = cls(library_id=data.get("libraryId", 1))
        for raw in data.get("items", []):
            item = Item(**raw)
            library.items_by_id[item.id] = item
        for raw in data.get("collections", []):
            collection = Collection(**raw)
            library.collections_by_id[collection.id] = collection
        library.prefs.values.update(data.get("prefs", {}))
        library._last_id = max([0, *library.items_by_id, *library.collections_by_id])
        library.path = Path(path) if path else None
        return library

    @classmethod
    def load(cls, path: t.Union[str, Path]) -> "LocalLibrary":
        """Open the library stored at ``path``, or an empty one if the file does not exist yet."""
        path = Path(path)
        if not path.exists():
            logger.info("Library file %s not found, starting empty", path)
            return cls(path=path)
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")), path=path)
