"""
Composition root of the syllabus engine.

:class:`SyllabusManager` owns one cache, one settings store, one ordering
engine and one debouncer for a host, and exposes assignment CRUD on top of
them. Every item write is a read-modify-write of the whole assignment map
under a per-item lock, followed by cache invalidation.
"""
from __future__ import annotations

import asyncio
import json
import logging
import typing as t
import weakref
from dataclasses import dataclass

from pydantic import ValidationError

from .cache import CollectionIdentifier, HostCache, collection_reference
from .codec import encode_assignment_map
from .collection_settings import CollectionSettingsStore
from .config import SYLLABUS_DATA_KEY, VIEW_MODES_KEY, SyllabusConfig
from .debounce import Debouncer
from .errors import CollectionNotFoundError, InvalidSettingsError, ItemNotFoundError
from .host import Collection, Host, Item
from .identity import ensure_ids, new_assignment_id
from .models import VIEW_MODES_ADAPTER, Assignment, AssignmentMap, CollectionSettings, ViewModes
from .ordering import ClassGroups, ItemAssignment, OrderingEngine

logger = logging.getLogger(__name__)

ItemRef = t.Union[int, Item]

# Assignment fields callers may set, in their Python spelling
ASSIGNMENT_FIELDS = ("class_number", "priority", "class_instruction", "status")


@dataclass
class SyllabusSummary:
    """One collection that carries syllabus settings."""
    collection: Collection
    settings: CollectionSettings
    item_ids: list[int]


class SyllabusManager:
    def __init__(self, host: Host, config: t.Optional[SyllabusConfig] = None) -> None:
        self.host = host
        self.config = config or SyllabusConfig()
        # A lock lives only while a write holds or awaits it
        self._item_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()
        self.cache = HostCache(
            host,
            item_cache_size=self.config.item_cache_size,
            syllabus_data_cache_size=self.config.syllabus_data_cache_size,
            write_lock=self._lock_for,
        )
        self.settings = CollectionSettingsStore(self.cache, self.config)
        self.ordering = OrderingEngine(self.cache, self.settings)
        self.debouncer = Debouncer(self.config.debounce_delay)

    def initialize(self) -> None:
        """Register the cache observer. Call before creating any reactive store."""
        self.cache.initialize()

    async def shutdown(self) -> None:
        await self.debouncer.flush()
        await self.cache.wait_for_pending_writes()
        self.cache.shutdown()

    # -----------------------------
    # Lookups
    # -----------------------------

    def require_item(self, item: ItemRef) -> Item:
        if isinstance(item, int):
            found = self.cache.get_item(item)
            if found is None:
                raise ItemNotFoundError(item)
            return found
        return item

    def require_collection(self, collection_id: CollectionIdentifier) -> Collection:
        collection = self.cache.get_collection(collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return collection

    def _lock_for(self, item_id: int) -> asyncio.Lock:
        lock = self._item_locks.get(item_id)
        if lock is None:
            lock = self._item_locks[item_id] = asyncio.Lock()
        return lock

    def get_item_syllabus_data(self, item: ItemRef) -> AssignmentMap:
        """Return the item's assignment map (empty when it has none)."""
        item_id = item if isinstance(item, int) else item.id
        return self.cache.get_item_syllabus_data(item_id) or AssignmentMap()

    def get_item_assignments(self, item: ItemRef, collection_id: int, sort: bool = False) -> list[Assignment]:
        assignments = self.get_item_syllabus_data(item).assignments_for(collection_id)
        if sort:
            return self.ordering.sort_assignments(assignments, collection_id)
        return assignments

    def get_first_assignment(self, item: ItemRef, collection_id: int) -> t.Optional[Assignment]:
        """Return the assignment that sorts first for the item, or ``None``."""
        assignments = self.get_item_assignments(item, collection_id, sort=True)
        return assignments[0] if assignments else None

    # -----------------------------
    # Item writes
    # -----------------------------

    async def _write_item_syllabus_data(self, item: Item, data: AssignmentMap) -> None:
        self.cache.invalidate_item_syllabus_data(item.id)
        await self.host.items.set_extra_field(item, SYLLABUS_DATA_KEY, encode_assignment_map(data))
        await self.host.items.save(item)
        self.cache.invalidate_item_syllabus_data(item.id)

    async def _modify_collection_assignments(
        self,
        item: ItemRef,
        collection_id: int,
        mutate: t.Callable[[list[Assignment]], t.Optional[list[Assignment]]],
    ) -> None:
        """Re-read the item's current map, let ``mutate`` edit one collection, write it back.

        ``mutate`` returns the new list, or ``None`` to leave the item untouched.
        """
        resolved = self.require_item(item)
        async with self._lock_for(resolved.id):
            data = self.get_item_syllabus_data(resolved.id)
            updated = mutate(data.assignments_for(collection_id))
            if updated is None:
                return
            data.set(collection_id, ensure_ids(a for a in updated if not a.is_empty))
            await self._write_item_syllabus_data(resolved, data)

    @staticmethod
    def _validated(base: t.Mapping[str, t.Any]) -> Assignment:
        try:
            return Assignment.model_validate(base)
        except ValidationError as e:
            raise InvalidSettingsError(f"Invalid assignment: {e}") from e

    async def add_assignment(
        self,
        item: ItemRef,
        collection_id: int,
        class_number: t.Optional[int] = None,
        priority: t.Optional[str] = None,
        class_instruction: t.Optional[str] = None,
        status: t.Optional[str] = None,
    ) -> t.Optional[Assignment]:
        """Attach a new assignment to an item.

        Returns:
            The stored assignment, or ``None`` if every field was empty (nothing is written).

        Raises:
            ItemNotFoundError: If ``item`` is an unknown ID.
            InvalidSettingsError: If a field fails validation (e.g. class number below 1).
        """
        assignment = self._validated({
            "id": new_assignment_id(),
            "class_number": class_number,
            "priority": priority,
            "class_instruction": class_instruction,
            "status": status,
        })
        if assignment.is_empty:
            logger.debug("Not adding an empty assignment to collection %s", collection_id)
            return None

        await self._modify_collection_assignments(item, collection_id, lambda current: [*current, assignment])
        return assignment

    async def update_assignment(
        self, item: ItemRef, collection_id: int, assignment_id: str, **updates: t.Any
    ) -> t.Optional[Assignment]:
        """Replace fields of one assignment; a ``None`` value clears the field.

        An assignment left with no fields is removed. An unknown
        ``assignment_id`` is logged and ignored.

        Returns:
            The updated assignment, or ``None`` if it was removed or not found.
        """
        unknown = set(updates) - set(ASSIGNMENT_FIELDS)
        if unknown:
            raise InvalidSettingsError(f"Unknown assignment fields: {sorted(unknown)}")

        result: t.Optional[Assignment] = None

        def mutate(current: list[Assignment]) -> t.Optional[list[Assignment]]:
            nonlocal result
            for index, existing in enumerate(current):
                if existing.id != assignment_id:
                    continue
                updated = self._validated({**existing.model_dump(), **updates, "id": existing.id})
                if updated.is_empty:
                    return current[:index] + current[index + 1:]
                result = updated
                return current[:index] + [updated] + current[index + 1:]
            logger.warning("Assignment %s not found on item for collection %s", assignment_id, collection_id)
            return None

        await self._modify_collection_assignments(item, collection_id, mutate)
        return result

    async def remove_assignment_by_id(self, item: ItemRef, collection_id: int, assignment_id: str) -> bool:
        removed = False

        def mutate(current: list[Assignment]) -> t.Optional[list[Assignment]]:
            nonlocal removed
            kept = [a for a in current if a.id != assignment_id]
            if len(kept) == len(current):
                logger.warning("Assignment %s not found for removal in collection %s", assignment_id, collection_id)
                return None
            removed = True
            return kept

        await self._modify_collection_assignments(item, collection_id, mutate)
        return removed

    async def remove_all_assignments(self, item: ItemRef, collection_id: int) -> bool:
        removed = False

        def mutate(current: list[Assignment]) -> t.Optional[list[Assignment]]:
            nonlocal removed
            if not current:
                return None
            removed = True
            return []

        await self._modify_collection_assignments(item, collection_id, mutate)
        return removed

    async def duplicate_assignment(
        self, item: ItemRef, collection_id: int, assignment_id: str
    ) -> t.Optional[Assignment]:
        """Insert a copy of an assignment, with a fresh ID, right after the original."""
        copy: t.Optional[Assignment] = None

        def mutate(current: list[Assignment]) -> t.Optional[list[Assignment]]:
            nonlocal copy
            for index, existing in enumerate(current):
                if existing.id == assignment_id:
                    copy = existing.model_copy(update={"id": new_assignment_id()})
                    return current[:index + 1] + [copy] + current[index + 1:]
            logger.warning("Assignment %s not found for duplication in collection %s", assignment_id, collection_id)
            return None

        await self._modify_collection_assignments(item, collection_id, mutate)
        return copy

    def invalidate_syllabus_data_cache(self, item: ItemRef) -> None:
        self.cache.invalidate_item_syllabus_data(item if isinstance(item, int) else item.id)

    # -----------------------------
    # Debounced edits
    # -----------------------------

    def schedule_assignment_update(self, item: ItemRef, collection_id: int, assignment_id: str, **updates: t.Any) -> None:
        self.debouncer.schedule(
            ("assignment", collection_id, assignment_id),
            lambda: self.update_assignment(item, collection_id, assignment_id, **updates),
        )

    def schedule_class_title(self, collection_id: CollectionIdentifier, class_number: int, title: str) -> None:
        self.debouncer.schedule(
            ("class-title", collection_id, class_number),
            self.settings.set_class_title, collection_id, class_number, title,
        )

    def schedule_class_description(self, collection_id: CollectionIdentifier, class_number: int, description: str) -> None:
        self.debouncer.schedule(
            ("class-description", collection_id, class_number),
            self.settings.set_class_description, collection_id, class_number, description,
        )

    def schedule_collection_description(self, collection_id: CollectionIdentifier, description: str) -> None:
        self.debouncer.schedule(
            ("collection-description", collection_id),
            self.settings.set_collection_description, collection_id, description,
        )

    # -----------------------------
    # Ordering views
    # -----------------------------

    def compare_assignments(self, a: Assignment, b: Assignment, collection_id: t.Optional[int] = None) -> int:
        return self.ordering.compare_assignments(a, b, collection_id)

    def sort_class_items(
        self, item_assignments: t.Sequence[ItemAssignment], collection_id: int, class_number: t.Optional[int]
    ) -> list[ItemAssignment]:
        return self.ordering.sort_class_items(item_assignments, collection_id, class_number)

    def get_all_class_assignments(self, collection_id: int, class_number: t.Optional[int]) -> list[ItemAssignment]:
        return self.ordering.get_all_class_assignments(collection_id, class_number)

    def get_full_class_number_range(self, collection_id: int) -> list[int]:
        return self.ordering.get_full_class_number_range(collection_id)

    def get_class_groups(self, collection_id: int) -> ClassGroups:
        return self.ordering.get_class_groups(collection_id)

    def move_assignment(
        self, collection_id: int, class_number: int, assignment_id: str, position: int
    ) -> list[str]:
        """Move an assignment within its class's manual order, creating the order if needed.

        The initial order is the current display order of the class.
        """
        current = self.settings.get_class_item_order(collection_id, class_number)
        if not current:
            current = [e.assignment.id for e in self.get_all_class_assignments(collection_id, class_number)]
        current = [i for i in current if i != assignment_id]
        position = max(0, min(position, len(current)))
        current.insert(position, assignment_id)
        self.settings.set_class_item_order(collection_id, class_number, current)
        return current

    # -----------------------------
    # View modes
    # -----------------------------

    @property
    def view_modes_key(self) -> str:
        return self.config.pref_key(VIEW_MODES_KEY)

    def get_view_modes(self, collection_id: CollectionIdentifier) -> ViewModes:
        reference = self.settings.reference_for(collection_id)
        stored = self.cache.get_pref(self.view_modes_key, VIEW_MODES_ADAPTER) or {}
        return stored.get(reference) or ViewModes()

    def _set_view_mode(self, collection_id: CollectionIdentifier, **flags: bool) -> None:
        collection = self.require_collection(collection_id)
        reference = self.settings.reference_for(collection.id)
        stored = dict(self.cache.get_pref(self.view_modes_key, VIEW_MODES_ADAPTER) or {})
        current = stored.get(reference) or ViewModes()
        stored[reference] = current.model_copy(update=flags)
        payload = {key: modes.model_dump() for key, modes in stored.items()}
        self.host.prefs.set(self.view_modes_key, json.dumps(payload))
        self.cache.invalidate_pref(self.view_modes_key)

    def get_compact_mode(self, collection_id: CollectionIdentifier) -> bool:
        return self.get_view_modes(collection_id).compact

    def set_compact_mode(self, collection_id: CollectionIdentifier, enabled: bool) -> None:
        self._set_view_mode(collection_id, compact=enabled)

    def get_reader_mode(self, collection_id: CollectionIdentifier) -> bool:
        return self.get_view_modes(collection_id).reader

    def set_reader_mode(self, collection_id: CollectionIdentifier, enabled: bool) -> None:
        self._set_view_mode(collection_id, reader=enabled)

    # -----------------------------
    # Library-wide operations
    # -----------------------------

    def get_syllabi(self) -> list[SyllabusSummary]:
        """Return every collection that has syllabus settings, with its regular item IDs."""
        everything = self.settings.get_all_settings()
        result = []
        for collection in self.host.collections.get_all():
            settings = everything.get(collection_reference(collection.library_id, collection.key))
            if settings is None:
                continue
            item_ids = [
                item.id for item in self.host.collections.get_child_items(collection) if item.is_regular_item()
            ]
            result.append(SyllabusSummary(collection=collection, settings=settings, item_ids=item_ids))
        return result

    def cleanup_settings(self) -> int:
        """Remove manual-order entries whose assignment no longer exists. Returns the count removed."""
        valid: dict[str, set[str]] = {}
        for collection in self.host.collections.get_all():
            ids = valid.setdefault(collection_reference(collection.library_id, collection.key), set())
            for _item, assignments in self.ordering.collection_item_assignments(collection.id):
                ids.update(a.id for a in assignments if a.id)
        return self.settings.cleanup_settings(valid)
