"""
Caches in front of the host's item, preference and collection lookups.

One :class:`HostCache` is owned by each :class:`~syllabus_data.manager.SyllabusManager`.
It registers a notifier observer on ``initialize()`` that drops stale entries
when the host reports item or collection changes. The observer must be
registered before any reactive store so that stores recomputing on the same
event read fresh data.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import typing as t
from collections import OrderedDict

from pydantic import TypeAdapter, ValidationError

from .codec import DecodedAssignmentMap, decode_assignment_map, encode_assignment_map
from .config import SYLLABUS_DATA_KEY
from .host import (EVENT_DELETE, EVENT_MODIFY, TYPE_COLLECTION, TYPE_ITEM, CallbackObserver, Collection, Host,
                   Item)
from .models import AssignmentMap

logger = logging.getLogger(__name__)

K = t.TypeVar("K")
V = t.TypeVar("V")

CollectionIdentifier = t.Union[int, tuple[int, str]]
WriteLock = t.Callable[[int], t.AsyncContextManager[t.Any]]


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


# Cached marker for "looked up, item has no syllabus data"
NO_SYLLABUS_DATA = _Sentinel("NO_SYLLABUS_DATA")
_MISSING = _Sentinel("MISSING")


class LRUCache(t.Generic[K, V]):
    """Size-bound mapping evicting the least recently used entry."""

    def __init__(self, capacity: int) -> None:
        self.capacity = max(1, capacity)
        self._store: "OrderedDict[K, V]" = OrderedDict()

    def get(self, key: K, default: t.Any = None) -> t.Any:
        if key not in self._store:
            return default
        self._store.move_to_end(key)
        return self._store[key]

    def put(self, key: K, value: V) -> None:
        self._store[key] = value
        self._store.move_to_end(key)
        while len(self._store) > self.capacity:
            self._store.popitem(last=False)

    def pop(self, key: K) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)


def collection_reference(library_id: int, key: str) -> str:
    """Return the ``"libraryID:key"`` string used to key settings and caches."""
    return f"{library_id}:{key}"


class HostCache:
    """
    Item, parsed-assignment, preference and collection caches.

    Every ``get_*`` accessor returns ``None`` when the lookup fails and never
    raises.
    """

    def __init__(
        self,
        host: Host,
        item_cache_size: int = 5000,
        syllabus_data_cache_size: int = 2000,
        write_lock: t.Optional[WriteLock] = None,
    ) -> None:
        self.host = host
        # Serialises migration write-backs with the owner's own item writes
        self.write_lock = write_lock
        self._items: LRUCache[int, Item] = LRUCache(item_cache_size)
        self._syllabus_data: LRUCache[int, t.Any] = LRUCache(syllabus_data_cache_size)
        self._prefs: dict[str, t.Any] = {}
        self._collections: dict[str, Collection] = {}
        self._collection_index: dict[int, str] = {}

        self._notifier_id: t.Optional[int] = None
        self._pref_observer_ids: dict[str, int] = {}
        self._pending_writes: set[asyncio.Task] = set()
        self.initialized = False

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def initialize(self) -> None:
        if self.initialized:
            return
        self._notifier_id = self.host.notifier.register_observer(
            CallbackObserver(self._on_notify), [TYPE_ITEM, TYPE_COLLECTION]
        )
        self.initialized = True

    def shutdown(self) -> None:
        if self._notifier_id is not None:
            self.host.notifier.unregister_observer(self._notifier_id)
            self._notifier_id = None
        for observer_id in self._pref_observer_ids.values():
            self.host.prefs.unobserve(observer_id)
        self._pref_observer_ids.clear()
        self.clear()
        self.initialized = False

    def clear(self) -> None:
        self._items.clear()
        self._syllabus_data.clear()
        self._prefs.clear()
        self._collections.clear()
        self._collection_index.clear()

    def _on_notify(self, event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> None:
        if event not in (EVENT_MODIFY, EVENT_DELETE):
            return
        for id_ in ids:
            if not isinstance(id_, int):
                continue
            if type == TYPE_ITEM:
                self._items.pop(id_)
                self._syllabus_data.pop(id_)
            elif type == TYPE_COLLECTION:
                self.invalidate_collection(id_)

    # -----------------------------
    # Items
    # -----------------------------

    def get_item(self, item_id: int) -> t.Optional[Item]:
        cached = self._items.get(item_id)
        if cached is not None:
            return cached
        try:
            item = self.host.items.get_by_id(item_id)
        except (LookupError, ValueError) as e:
            logger.warning("Item lookup failed for %s: %s", item_id, e)
            return None
        if item is not None:
            self._items.put(item_id, item)
        return item

    def get_item_syllabus_data(self, item_id: int) -> t.Optional[AssignmentMap]:
        """Return the parsed assignment map of an item, or ``None`` when it has none.

        Legacy payloads are migrated in memory; the migrated text is written
        back in the background when an event loop is running.
        """
        cached = self._syllabus_data.get(item_id, _MISSING)
        if cached is NO_SYLLABUS_DATA:
            return None
        if cached is not _MISSING:
            return cached.copy()

        item = self.get_item(item_id)
        if item is None:
            return None

        raw = self.host.items.get_extra_field(item, SYLLABUS_DATA_KEY)
        decoded = decode_assignment_map(raw)
        if decoded is None:
            self._syllabus_data.put(item_id, NO_SYLLABUS_DATA)
            return None

        if decoded.needs_write_back:
            self._schedule_write_back(item, raw, decoded)
        self._syllabus_data.put(item_id, decoded.data)
        return decoded.data.copy()

    def invalidate_item_syllabus_data(self, item_id: int) -> None:
        self._syllabus_data.pop(item_id)

    def invalidate_item(self, item_id: int) -> None:
        self._items.pop(item_id)
        self._syllabus_data.pop(item_id)

    def _schedule_write_back(self, item: Item, raw: str, decoded: DecodedAssignmentMap) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, skipping migration write-back for item %s", item.id)
            return
        task = loop.create_task(self._write_back(item, raw, encode_assignment_map(decoded.data)))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_back(self, item: Item, raw: str, payload: str) -> None:
        lock = self.write_lock(item.id) if self.write_lock is not None else contextlib.nullcontext()
        try:
            async with lock:
                current = self.host.items.get_by_id(item.id)
                # A write that landed since the read already stores the migrated shape
                if current is None or self.host.items.get_extra_field(current, SYLLABUS_DATA_KEY) != raw:
                    logger.debug("Syllabus data of item %s changed since it was read, skipping write-back", item.id)
                    return
                await self.host.items.set_extra_field(current, SYLLABUS_DATA_KEY, payload)
                await self.host.items.save(current)
        except Exception:
            logger.exception("Error saving upgraded syllabus data for item %s", item.id)
            return
        logger.debug("Migrated syllabus data saved for item %s: %s", item.id, payload)

    async def wait_for_pending_writes(self) -> None:
        """Await background migration write-backs (used on shutdown and in tests)."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    # -----------------------------
    # Preferences
    # -----------------------------

    def get_pref(self, key: str, adapter: t.Optional[TypeAdapter] = None) -> t.Any:
        """Return a preference value, parsed from JSON when ``adapter`` is given.

        Values are cached until the host reports a change to the key. A value
        that fails to parse or validate is cached as ``None``.
        """
        cached = self._prefs.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        raw = self.host.prefs.get(key)
        value: t.Any = raw
        if adapter is not None:
            value = None
            if raw:
                try:
                    if isinstance(raw, (str, bytes)):
                        value = adapter.validate_json(raw)
                    else:
                        value = adapter.validate_python(raw)
                except ValidationError as e:
                    logger.warning("Error validating preference %s: %s", key, e)

        self._prefs[key] = value
        self._register_pref_observer(key)
        return value

    def invalidate_pref(self, key: str) -> None:
        self._prefs.pop(key, None)

    def _register_pref_observer(self, key: str) -> None:
        if key in self._pref_observer_ids:
            return
        self._pref_observer_ids[key] = self.host.prefs.observe(key, lambda _value: self.invalidate_pref(key))

    # -----------------------------
    # Collections
    # -----------------------------

    def get_collection(self, identifier: CollectionIdentifier) -> t.Optional[Collection]:
        if isinstance(identifier, tuple):
            library_id, key = identifier
            return self.get_collection_by_key(library_id, key)
        return self.get_collection_by_id(identifier)

    def get_collection_by_id(self, collection_id: int) -> t.Optional[Collection]:
        reference = self._collection_index.get(collection_id)
        if reference is not None:
            cached = self._collections.get(reference)
            if cached is not None:
                return cached
            # Stale index entry
            del self._collection_index[collection_id]

        try:
            collection = self.host.collections.get_by_id(collection_id)
        except (LookupError, ValueError) as e:
            logger.warning("Collection lookup failed for %s: %s", collection_id, e)
            return None
        if collection is not None:
            self._store_collection(collection)
        return collection

    def get_collection_by_key(self, library_id: int, key: str) -> t.Optional[Collection]:
        cached = self._collections.get(collection_reference(library_id, key))
        if cached is not None:
            return cached

        try:
            collection = self.host.collections.get_by_library_and_key(library_id, key)
        except (LookupError, ValueError) as e:
            logger.warning("Collection lookup failed for %s:%s: %s", library_id, key, e)
            return None
        if collection is not None:
            self._store_collection(collection)
        return collection

    def _store_collection(self, collection: Collection) -> None:
        reference = collection_reference(collection.library_id, collection.key)
        self._collections[reference] = collection
        self._collection_index[collection.id] = reference

    def invalidate_collection(self, collection_id: int) -> None:
        reference = self._collection_index.pop(collection_id, None)
        if reference is not None:
            self._collections.pop(reference, None)

    def invalidate_collection_by_key(self, library_id: int, key: str) -> None:
        reference = collection_reference(library_id, key)
        self._collections.pop(reference, None)
        for collection_id, cached in list(self._collection_index.items()):
            if cached == reference:
                del self._collection_index[collection_id]
                break
