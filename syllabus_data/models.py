"""
Data models for syllabus assignments and collection settings.

Persisted shapes are pydantic models so that the JSON stored on items and in
preferences is validated on the way in and serialised with the stored
camelCase field names on the way out.
"""
from __future__ import annotations

import typing as t
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# Type literals for commonly used values
AssignmentStatus = t.Literal["done"]
ClassStatus = t.Literal["done"]

HEX_COLOR_PATTERN = r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$"

# Order reported for assignments without a priority; sorts after every real priority
UNPRIORITIZED_ORDER = 10_000


class SyllabusPriority(str, Enum):
    """Built-in priorities available when a collection defines none."""
    COURSE_INFO = "course-info"
    ESSENTIAL = "essential"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


PRIORITY_COLORS: dict[str, str] = {
    SyllabusPriority.COURSE_INFO.value: "#F97316",  # orange
    SyllabusPriority.ESSENTIAL.value: "#8B5CF6",    # purple
    SyllabusPriority.RECOMMENDED.value: "#3B82F6",  # blue
    SyllabusPriority.OPTIONAL.value: "#AAA",        # grey
}

PRIORITY_LABELS: dict[str, str] = {
    SyllabusPriority.COURSE_INFO.value: "Course Information",
    SyllabusPriority.ESSENTIAL.value: "Essential",
    SyllabusPriority.RECOMMENDED.value: "Recommended",
    SyllabusPriority.OPTIONAL.value: "Optional",
}


def _blank_to_none(value: t.Any) -> t.Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Assignment(BaseModel):
    """
    A single item-to-class scheduling annotation.

    Instances are immutable; edits produce a copy via ``model_copy(update=...)``
    so the ``id`` of an entry never changes once minted.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: t.Optional[str] = None
    class_number: t.Optional[int] = Field(default=None, alias="classNumber", ge=1)
    priority: t.Optional[str] = None             # built-in or custom priority id
    class_instruction: t.Optional[str] = Field(default=None, alias="classInstruction")
    status: t.Optional[AssignmentStatus] = None

    @field_validator("id", "priority", "class_instruction", mode="before")
    @classmethod
    def _strip_blanks(cls, value: t.Any) -> t.Any:
        return _blank_to_none(value)

    @property
    def is_empty(self) -> bool:
        """True when the entry schedules nothing (no class, priority or instruction)."""
        return self.class_number is None and not self.priority and not self.class_instruction

    def to_json_dict(self) -> dict[str, t.Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CustomPriority(BaseModel):
    """A collection-specific priority replacing the built-in taxonomy."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    color: str = Field(pattern=HEX_COLOR_PATTERN)
    order: int


DEFAULT_PRIORITIES: list[CustomPriority] = [
    CustomPriority(id=p.value, name=PRIORITY_LABELS[p.value], color=PRIORITY_COLORS[p.value], order=i)
    for i, p in enumerate(SyllabusPriority, start=1)
]


class ClassMetadata(BaseModel):
    """Title, description, reading date and manual item order of one class."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: t.Optional[str] = None
    description: t.Optional[str] = None
    item_order: t.Optional[list[str]] = Field(default=None, alias="itemOrder")
    reading_date: t.Optional[str] = Field(default=None, alias="readingDate")  # ISO date
    status: t.Optional[ClassStatus] = None
    # Set by create_additional_class; keeps the class in the range once its fields are cleared
    pinned: t.Optional[bool] = None

    def is_empty(self) -> bool:
        return not (self.title or self.description or self.item_order or self.reading_date or self.status)


class CollectionSettings(BaseModel):
    """
    Per-collection syllabus settings.

    ``classes`` is keyed by the class number rendered as a string, matching the
    JSON layout of the persisted dictionary. Null class entries found in stored
    data are dropped while parsing.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description: t.Optional[str] = None
    nomenclature: t.Optional[str] = None
    locked: t.Optional[bool] = None
    priorities: t.Optional[list[CustomPriority]] = None
    classes: t.Optional[dict[str, ClassMetadata]] = None

    @field_validator("classes", mode="before")
    @classmethod
    def _drop_null_classes(cls, value: t.Any) -> t.Any:
        if not value:
            return None
        if isinstance(value, dict):
            filtered = {str(key): entry for key, entry in value.items() if entry is not None}
            return filtered or None
        return value

    def is_empty(self) -> bool:
        return not (
            self.description
            or self.nomenclature
            or self.locked
            or self.priorities
            or self.classes
        )

    def to_json_dict(self) -> dict[str, t.Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ViewModes(BaseModel):
    """Per-collection display flags."""
    compact: bool = False
    reader: bool = False


class SyllabusExport(BaseModel):
    """
    Portable export of one collection's syllabus settings.

    Consumed by the import path, which also accepts a bare settings object.
    """
    version: int = 1
    title: str = ""
    metadata: CollectionSettings = Field(default_factory=CollectionSettings)


SETTINGS_DICTIONARY_ADAPTER = TypeAdapter(dict[str, CollectionSettings])
VIEW_MODES_ADAPTER = TypeAdapter(dict[str, ViewModes])


class AssignmentMap:
    """
    Per-item map of collection id to assignment list.

    The map is sparse: a collection with no assignments has no key at all.
    :meth:`get` makes the distinction explicit by returning ``None`` for an
    absent collection, and :meth:`set` removes the key when handed an empty
    list, so an empty list is never stored.
    """

    def __init__(self, entries: t.Optional[t.Mapping[t.Any, t.Iterable[Assignment]]] = None) -> None:
        self._entries: dict[str, list[Assignment]] = {}
        for collection_id, assignments in (entries or {}).items():
            self.set(collection_id, assignments)

    @staticmethod
    def _key(collection_id: t.Any) -> str:
        return str(collection_id)

    def get(self, collection_id: t.Any) -> t.Optional[list[Assignment]]:
        """Return a copy of the assignments for a collection, or ``None`` if absent."""
        found = self._entries.get(self._key(collection_id))
        return list(found) if found is not None else None

    def assignments_for(self, collection_id: t.Any) -> list[Assignment]:
        return self.get(collection_id) or []

    def set(self, collection_id: t.Any, assignments: t.Iterable[Assignment]) -> None:
        values = list(assignments)
        key = self._key(collection_id)
        if values:
            self._entries[key] = values
        else:
            self._entries.pop(key, None)

    def remove(self, collection_id: t.Any) -> bool:
        return self._entries.pop(self._key(collection_id), None) is not None

    def collection_ids(self) -> list[str]:
        return list(self._entries)

    def items(self) -> t.Iterator[tuple[str, list[Assignment]]]:
        for key, values in self._entries.items():
            yield key, list(values)

    def copy(self) -> "AssignmentMap":
        return AssignmentMap(self._entries)

    def to_json_dict(self) -> dict[str, list[dict[str, t.Any]]]:
        return {
            key: [assignment.to_json_dict() for assignment in values]
            for key, values in self._entries.items()
        }

    def __contains__(self, collection_id: object) -> bool:
        return self._key(collection_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssignmentMap):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"AssignmentMap({self._entries!r})"
