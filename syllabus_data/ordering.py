"""
Ordering of assignments and of the items scheduled for a class.

The sort key of an assignment, most significant first:

1. group: prioritised but unscheduled (0), scheduled (1), neither (2);
2. class number, missing last;
3. position in the class's manual order, unlisted IDs after listed ones;
4. priority order resolved against the collection's priorities;
5. first four alphanumeric characters of the instruction, case-folded;
6. assignment ID.

The key is a tuple, so sorting with it is a total order and repeated sorts
are stable.
"""
from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass, field

from .cache import CollectionIdentifier, HostCache
from .collection_settings import CollectionSettingsStore
from .host import Item
from .models import UNPRIORITIZED_ORDER, Assignment, ClassMetadata

logger = logging.getLogger(__name__)

SortKey = tuple[int, tuple[bool, int], int, int, str, str]


@dataclass
class ItemAssignment:
    """An item paired with one of its assignments."""
    item: Item
    assignment: Assignment


@dataclass
class ClassGroup:
    class_number: t.Optional[int]
    metadata: t.Optional[ClassMetadata] = None
    item_assignments: list[ItemAssignment] = field(default_factory=list)


@dataclass
class ClassGroups:
    class_groups: list[ClassGroup]
    further_reading: list[Item]


def instruction_key(instruction: t.Optional[str]) -> str:
    return "".join(ch for ch in (instruction or "") if ch.isalnum())[:4].casefold()


def assignment_group(assignment: Assignment) -> int:
    if assignment.class_number is None:
        return 0 if assignment.priority else 2
    return 1


def build_sort_key(
    assignment: Assignment,
    priority_order: int,
    manual_order: t.Sequence[str] = (),
) -> SortKey:
    """Build the sort key of one assignment.

    Args:
        assignment: The assignment to key.
        priority_order: Its priority's order in the collection (``UNPRIORITIZED_ORDER`` if none).
        manual_order: Manual order of the assignment's class, empty when there is none.
    """
    class_number = assignment.class_number
    position = 0
    if manual_order:
        try:
            position = list(manual_order).index(assignment.id)
        except ValueError:
            position = len(manual_order)
    return (
        assignment_group(assignment),
        (class_number is None, class_number or 0),
        position,
        priority_order,
        instruction_key(assignment.class_instruction),
        assignment.id or "",
    )


def _title_key(item: Item) -> str:
    return (item.title or "").casefold()


class OrderingEngine:
    """Sorting and grouping of a collection's assignments."""

    def __init__(self, cache: HostCache, settings: CollectionSettingsStore) -> None:
        self.cache = cache
        self.settings = settings

    def _priority_orders(self, collection_id: t.Optional[CollectionIdentifier]) -> t.Callable[[t.Optional[str]], int]:
        priorities = {p.id: p.order for p in self.settings.get_priorities_for_collection(collection_id)}

        def resolve(priority_id: t.Optional[str]) -> int:
            if not priority_id:
                return UNPRIORITIZED_ORDER
            if priority_id in priorities:
                return priorities[priority_id]
            return self.settings.get_priority_order_for_collection(None, priority_id)

        return resolve

    def _key_function(self, collection_id: t.Optional[CollectionIdentifier]) -> t.Callable[[Assignment], SortKey]:
        resolve = self._priority_orders(collection_id)
        classes: dict[str, ClassMetadata] = {}
        if collection_id is not None:
            classes = self.settings.get_settings(collection_id).classes or {}

        def key(assignment: Assignment) -> SortKey:
            manual: t.Sequence[str] = ()
            if assignment.class_number is not None:
                entry = classes.get(str(assignment.class_number))
                manual = (entry.item_order if entry else None) or ()
            return build_sort_key(assignment, resolve(assignment.priority), manual)

        return key

    def assignment_sort_key(self, assignment: Assignment, collection_id: t.Optional[CollectionIdentifier] = None) -> SortKey:
        return self._key_function(collection_id)(assignment)

    def compare_assignments(
        self, a: Assignment, b: Assignment, collection_id: t.Optional[CollectionIdentifier] = None
    ) -> int:
        """Three-way comparison returning -1, 0 or 1."""
        key = self._key_function(collection_id)
        key_a, key_b = key(a), key(b)
        return (key_a > key_b) - (key_a < key_b)

    def sort_assignments(
        self, assignments: t.Iterable[Assignment], collection_id: t.Optional[CollectionIdentifier] = None
    ) -> list[Assignment]:
        return sorted(assignments, key=self._key_function(collection_id))

    def sort_class_items(
        self,
        item_assignments: t.Sequence[ItemAssignment],
        collection_id: CollectionIdentifier,
        class_number: t.Optional[int],
    ) -> list[ItemAssignment]:
        """Order the item assignments of one class.

        With a manual order, listed assignment IDs come first in list order
        (IDs that match nothing are skipped) and the rest follow by title.
        Without one, items sort by class number, priority order, then title.
        """
        manual = self.settings.get_class_item_order(collection_id, class_number)
        if manual:
            by_id: dict[str, ItemAssignment] = {}
            for entry in item_assignments:
                if entry.assignment.id:
                    by_id.setdefault(entry.assignment.id, entry)
            listed = [by_id[assignment_id] for assignment_id in dict.fromkeys(manual) if assignment_id in by_id]
            stale = len(set(manual)) - len(listed)
            if stale:
                logger.debug("Skipping %d stale manual-order IDs for class %s", stale, class_number)
            remaining = [entry for entry in item_assignments if not any(entry is chosen for chosen in listed)]
            remaining.sort(key=lambda e: (_title_key(e.item), e.assignment.id or ""))
            return listed + remaining

        resolve = self._priority_orders(collection_id)
        return sorted(
            item_assignments,
            key=lambda e: (
                e.assignment.class_number is None,
                e.assignment.class_number or 0,
                resolve(e.assignment.priority),
                _title_key(e.item),
                e.assignment.id or "",
            ),
        )

    # -----------------------------
    # Collection-wide views
    # -----------------------------

    def collection_item_assignments(self, collection_id: CollectionIdentifier) -> list[tuple[Item, list[Assignment]]]:
        """Return every child item of a collection with its assignments there."""
        collection = self.cache.get_collection(collection_id)
        if collection is None:
            return []
        result = []
        for item in self.cache.host.collections.get_child_items(collection):
            data = self.cache.get_item_syllabus_data(item.id)
            result.append((item, data.assignments_for(collection.id) if data else []))
        return result

    def get_all_class_assignments(
        self, collection_id: CollectionIdentifier, class_number: t.Optional[int]
    ) -> list[ItemAssignment]:
        """Return the (item, assignment) pairs scheduled for one class, in display order."""
        pairs = [
            ItemAssignment(item, assignment)
            for item, assignments in self.collection_item_assignments(collection_id)
            for assignment in assignments
            if assignment.class_number == class_number and not assignment.is_empty
        ]
        return self.sort_class_items(pairs, collection_id, class_number)

    def get_full_class_number_range(self, collection_id: CollectionIdentifier) -> list[int]:
        """Return ``1..max`` over scheduled and metadata-only classes, or an empty list."""
        numbers = set(self.settings.get_class_numbers(collection_id))
        for _item, assignments in self.collection_item_assignments(collection_id):
            numbers.update(a.class_number for a in assignments if a.class_number is not None)
        if not numbers:
            return []
        return list(range(1, max(numbers) + 1))

    def get_class_groups(self, collection_id: CollectionIdentifier) -> ClassGroups:
        """Group the collection's items by class.

        Regular items without any non-empty assignment go to further reading.
        The unscheduled group (class ``None``) comes first, then every class
        of the full range, each sorted with :meth:`sort_class_items`.
        """
        further_reading: list[Item] = []
        by_class: dict[t.Optional[int], list[ItemAssignment]] = {}

        for item, assignments in self.collection_item_assignments(collection_id):
            if not item.is_regular_item():
                continue
            scheduled = [a for a in assignments if not a.is_empty]
            if not scheduled:
                further_reading.append(item)
                continue
            for assignment in scheduled:
                by_class.setdefault(assignment.class_number, []).append(ItemAssignment(item, assignment))

        class_numbers: set[t.Optional[int]] = set(self.get_full_class_number_range(collection_id))
        class_numbers.update(by_class)
        ordered = sorted(class_numbers, key=lambda n: (n is not None, n or 0))

        classes = self.settings.get_settings(collection_id).classes or {}
        groups = [
            ClassGroup(
                class_number=number,
                metadata=classes.get(str(number)) if number else None,
                item_assignments=self.sort_class_items(by_class.get(number, []), collection_id, number),
            )
            for number in ordered
        ]
        further_reading.sort(key=_title_key)
        return ClassGroups(class_groups=groups, further_reading=further_reading)
