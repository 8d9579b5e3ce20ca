"""
Collection-level syllabus settings.

All collections share one dictionary stored as a single JSON preference,
keyed by ``"libraryID:collectionKey"``. Reads go through the preference
cache and return copies; every write loads the dictionary, applies one
change and saves it back whole.
"""
from __future__ import annotations

import json
import logging
import typing as t
from dataclasses import dataclass
from datetime import date

from pydantic import ValidationError

from .cache import CollectionIdentifier, HostCache, collection_reference
from .config import COLLECTION_METADATA_KEY, SyllabusConfig
from .errors import CollectionNotFoundError, InvalidSettingsError
from .models import (DEFAULT_PRIORITIES, PRIORITY_LABELS, SETTINGS_DICTIONARY_ADAPTER,
                     UNPRIORITIZED_ORDER, ClassMetadata, ClassStatus, CollectionSettings, CustomPriority,
                     SyllabusExport)

logger = logging.getLogger(__name__)

DEFAULT_NOMENCLATURE = "class"

_DEFAULT_BY_ID = {p.id: p for p in DEFAULT_PRIORITIES}


@dataclass(frozen=True)
class NomenclatureForms:
    singular: str
    plural: str
    singular_capitalized: str
    plural_capitalized: str


def pluralize(noun: str) -> str:
    """Return the English plural of a lower-case singular noun."""
    if not noun:
        return noun
    if noun.endswith(("s", "x", "z", "ch", "sh")):
        return noun + "es"
    if noun.endswith("y") and len(noun) > 1 and noun[-2] not in "aeiou":
        return noun[:-1] + "ies"
    return noun + "s"


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _clean_text(value: t.Optional[str]) -> t.Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _class_key(class_number: int) -> str:
    return str(class_number)


class CollectionSettingsStore:
    """Reads and writes the collection settings dictionary."""

    def __init__(self, cache: HostCache, config: t.Optional[SyllabusConfig] = None) -> None:
        self.cache = cache
        self.config = config or SyllabusConfig()
        self.pref_key = self.config.pref_key(COLLECTION_METADATA_KEY)

    # -----------------------------
    # Dictionary access
    # -----------------------------

    def reference_for(self, identifier: CollectionIdentifier) -> t.Optional[str]:
        """Return the settings key of a collection, or ``None`` if it is unknown."""
        if isinstance(identifier, tuple):
            library_id, key = identifier
            return collection_reference(library_id, key)
        collection = self.cache.get_collection(identifier)
        if collection is None:
            return None
        return collection_reference(collection.library_id, collection.key)

    def _require_reference(self, identifier: CollectionIdentifier) -> str:
        reference = self.reference_for(identifier)
        if reference is None:
            raise CollectionNotFoundError(identifier)
        return reference

    def get_all_settings(self) -> dict[str, CollectionSettings]:
        """Return a deep copy of the whole dictionary."""
        stored = self.cache.get_pref(self.pref_key, SETTINGS_DICTIONARY_ADAPTER) or {}
        return {reference: settings.model_copy(deep=True) for reference, settings in stored.items()}

    def save_all_settings(self, settings: t.Mapping[str, CollectionSettings]) -> None:
        payload = {reference: value.to_json_dict() for reference, value in settings.items()}
        self.cache.host.prefs.set(self.pref_key, json.dumps(payload, ensure_ascii=False))
        self.cache.invalidate_pref(self.pref_key)

    def get_settings(self, identifier: CollectionIdentifier) -> CollectionSettings:
        """Return the settings of one collection, empty when none are stored."""
        reference = self.reference_for(identifier)
        if reference is None:
            return CollectionSettings()
        return self.get_all_settings().get(reference) or CollectionSettings()

    def _update(
        self,
        identifier: CollectionIdentifier,
        mutate: t.Callable[[CollectionSettings], None],
    ) -> CollectionSettings:
        reference = self._require_reference(identifier)
        everything = self.get_all_settings()
        settings = everything.get(reference) or CollectionSettings()
        mutate(settings)
        everything[reference] = settings
        self.save_all_settings(everything)
        return settings

    def _update_class(
        self,
        identifier: CollectionIdentifier,
        class_number: int,
        mutate: t.Callable[[ClassMetadata], None],
    ) -> None:
        def apply(settings: CollectionSettings) -> None:
            classes = dict(settings.classes or {})
            key = _class_key(class_number)
            entry = classes.get(key) or ClassMetadata()
            mutate(entry)
            if entry.is_empty() and not entry.pinned:
                classes.pop(key, None)
            else:
                classes[key] = entry
            settings.classes = classes or None

        self._update(identifier, apply)

    # -----------------------------
    # Collection fields
    # -----------------------------

    def get_collection_description(self, identifier: CollectionIdentifier) -> str:
        return self.get_settings(identifier).description or ""

    def set_collection_description(self, identifier: CollectionIdentifier, description: str) -> None:
        def apply(settings: CollectionSettings) -> None:
            settings.description = _clean_text(description)

        self._update(identifier, apply)

    def get_locked(self, identifier: CollectionIdentifier) -> bool:
        return bool(self.get_settings(identifier).locked)

    def set_locked(self, identifier: CollectionIdentifier, locked: bool) -> None:
        def apply(settings: CollectionSettings) -> None:
            settings.locked = True if locked else None

        self._update(identifier, apply)

    def get_nomenclature(self, identifier: CollectionIdentifier) -> str:
        return self.get_settings(identifier).nomenclature or DEFAULT_NOMENCLATURE

    def set_nomenclature(self, identifier: CollectionIdentifier, nomenclature: str) -> None:
        normalized = nomenclature.strip().lower()

        def apply(settings: CollectionSettings) -> None:
            settings.nomenclature = normalized or None

        self._update(identifier, apply)

    def get_nomenclature_formatted(self, identifier: CollectionIdentifier) -> NomenclatureForms:
        singular = self.get_nomenclature(identifier)
        plural = pluralize(singular)
        return NomenclatureForms(
            singular=singular,
            plural=plural,
            singular_capitalized=_capitalize(singular),
            plural_capitalized=_capitalize(plural),
        )

    # -----------------------------
    # Priorities
    # -----------------------------

    def get_priorities_for_collection(self, identifier: t.Optional[CollectionIdentifier]) -> list[CustomPriority]:
        """Return the collection's priorities sorted by ``order`` (stable), or the defaults."""
        if identifier is None:
            return list(DEFAULT_PRIORITIES)
        custom = self.get_settings(identifier).priorities
        if not custom:
            return list(DEFAULT_PRIORITIES)
        return sorted(custom, key=lambda p: p.order)

    def _find_priority(self, identifier: t.Optional[CollectionIdentifier], priority_id: str) -> t.Optional[CustomPriority]:
        for priority in self.get_priorities_for_collection(identifier):
            if priority.id == priority_id:
                return priority
        return _DEFAULT_BY_ID.get(priority_id)

    def get_priority_order_for_collection(
        self, identifier: t.Optional[CollectionIdentifier], priority_id: t.Optional[str]
    ) -> int:
        if not priority_id:
            return UNPRIORITIZED_ORDER
        found = self._find_priority(identifier, priority_id)
        return found.order if found is not None else UNPRIORITIZED_ORDER

    def get_priority_color_for_collection(
        self, identifier: t.Optional[CollectionIdentifier], priority_id: t.Optional[str]
    ) -> t.Optional[str]:
        if not priority_id:
            return None
        found = self._find_priority(identifier, priority_id)
        return found.color if found is not None else None

    def get_priority_label_for_collection(
        self, identifier: t.Optional[CollectionIdentifier], priority_id: t.Optional[str]
    ) -> str:
        if not priority_id:
            return ""
        found = self._find_priority(identifier, priority_id)
        if found is not None:
            return found.name
        return PRIORITY_LABELS.get(priority_id, priority_id)

    def set_priorities(self, identifier: CollectionIdentifier, priorities: t.Sequence[CustomPriority]) -> None:
        """Replace the custom priorities; an empty list restores the defaults."""
        def apply(settings: CollectionSettings) -> None:
            settings.priorities = list(priorities) or None

        self._update(identifier, apply)

    def add_priority(self, identifier: CollectionIdentifier, priority: CustomPriority) -> None:
        current = self.get_priorities_for_collection(identifier)
        if any(p.id == priority.id for p in current):
            raise InvalidSettingsError(f"Priority already exists: {priority.id}")
        self.set_priorities(identifier, [*current, priority])

    def update_priority(self, identifier: CollectionIdentifier, priority_id: str, **updates: t.Any) -> CustomPriority:
        current = self.get_priorities_for_collection(identifier)
        for index, priority in enumerate(current):
            if priority.id != priority_id:
                continue
            try:
                updated = CustomPriority.model_validate({**priority.model_dump(), **updates, "id": priority_id})
            except ValidationError as e:
                raise InvalidSettingsError(str(e)) from e
            current[index] = updated
            self.set_priorities(identifier, current)
            return updated
        raise InvalidSettingsError(f"Unknown priority: {priority_id}")

    def delete_priority(self, identifier: CollectionIdentifier, priority_id: str) -> None:
        """Remove one priority. The defaults are materialised first if none are custom.

        Raises:
            InvalidSettingsError: If the priority is the last one left.
        """
        current = self.get_priorities_for_collection(identifier)
        remaining = [p for p in current if p.id != priority_id]
        if len(remaining) == len(current):
            logger.warning("Priority %s not found for collection %s", priority_id, identifier)
            return
        if not remaining:
            raise InvalidSettingsError("At least one priority must remain")
        self.set_priorities(identifier, remaining)

    # -----------------------------
    # Classes
    # -----------------------------

    def get_class_metadata(self, identifier: CollectionIdentifier, class_number: int) -> t.Optional[ClassMetadata]:
        classes = self.get_settings(identifier).classes or {}
        return classes.get(_class_key(class_number))

    def get_class_title(self, identifier: CollectionIdentifier, class_number: int) -> str:
        entry = self.get_class_metadata(identifier, class_number)
        return (entry.title if entry else None) or ""

    def set_class_title(self, identifier: CollectionIdentifier, class_number: int, title: str) -> None:
        def apply(entry: ClassMetadata) -> None:
            entry.title = _clean_text(title)

        self._update_class(identifier, class_number, apply)

    def get_class_description(self, identifier: CollectionIdentifier, class_number: int) -> str:
        entry = self.get_class_metadata(identifier, class_number)
        return (entry.description if entry else None) or ""

    def set_class_description(self, identifier: CollectionIdentifier, class_number: int, description: str) -> None:
        def apply(entry: ClassMetadata) -> None:
            entry.description = _clean_text(description)

        self._update_class(identifier, class_number, apply)

    def get_class_reading_date(self, identifier: CollectionIdentifier, class_number: int) -> t.Optional[date]:
        entry = self.get_class_metadata(identifier, class_number)
        if entry is None or not entry.reading_date:
            return None
        try:
            return date.fromisoformat(entry.reading_date[:10])
        except ValueError:
            logger.warning("Invalid reading date %r for class %s", entry.reading_date, class_number)
            return None

    def set_class_reading_date(
        self, identifier: CollectionIdentifier, class_number: int, reading_date: t.Union[date, str, None]
    ) -> None:
        if isinstance(reading_date, str) and reading_date.strip():
            try:
                reading_date = date.fromisoformat(reading_date.strip()[:10])
            except ValueError as e:
                raise InvalidSettingsError(f"Invalid reading date: {reading_date!r}") from e
        value = reading_date.isoformat() if isinstance(reading_date, date) else None

        def apply(entry: ClassMetadata) -> None:
            entry.reading_date = value

        self._update_class(identifier, class_number, apply)

    def get_class_status(self, identifier: CollectionIdentifier, class_number: int) -> t.Optional[ClassStatus]:
        entry = self.get_class_metadata(identifier, class_number)
        return entry.status if entry else None

    def set_class_status(self, identifier: CollectionIdentifier, class_number: int, status: t.Optional[ClassStatus]) -> None:
        def apply(entry: ClassMetadata) -> None:
            entry.status = status

        self._update_class(identifier, class_number, apply)

    def get_class_item_order(self, identifier: t.Optional[CollectionIdentifier], class_number: t.Optional[int]) -> list[str]:
        """Return the manual order (assignment IDs) of a class, empty when there is none."""
        if identifier is None or class_number is None:
            return []
        entry = self.get_class_metadata(identifier, class_number)
        return list(entry.item_order or []) if entry else []

    def set_class_item_order(self, identifier: CollectionIdentifier, class_number: int, item_order: t.Sequence[str]) -> None:
        # Duplicates keep their first position
        ordered = list(dict.fromkeys(i for i in item_order if i))

        def apply(entry: ClassMetadata) -> None:
            entry.item_order = ordered or None

        self._update_class(identifier, class_number, apply)

    def create_additional_class(self, identifier: CollectionIdentifier, class_number: int) -> None:
        """Make sure a class exists in the range even with no items or metadata.

        The class stays in the range until :meth:`delete_class`, even after
        its fields are set and cleared again.
        """
        def apply(settings: CollectionSettings) -> None:
            classes = dict(settings.classes or {})
            key = _class_key(class_number)
            entry = classes.get(key) or ClassMetadata()
            entry.pinned = True
            classes[key] = entry
            settings.classes = classes

        self._update(identifier, apply)

    def delete_class(self, identifier: CollectionIdentifier, class_number: int) -> None:
        def apply(settings: CollectionSettings) -> None:
            classes = dict(settings.classes or {})
            classes.pop(_class_key(class_number), None)
            settings.classes = classes or None

        self._update(identifier, apply)

    def get_class_numbers(self, identifier: CollectionIdentifier) -> list[int]:
        """Return the class numbers present in the settings, ignoring malformed keys."""
        numbers = []
        for key in self.get_settings(identifier).classes or {}:
            try:
                numbers.append(int(key))
            except ValueError:
                logger.warning("Ignoring malformed class key %r", key)
        return sorted(n for n in numbers if n >= 1)

    # -----------------------------
    # Maintenance, export and import
    # -----------------------------

    def cleanup_settings(self, valid_assignment_ids: t.Mapping[str, t.Collection[str]]) -> int:
        """Drop manual-order IDs that no longer match an assignment.

        Args:
            valid_assignment_ids: Current assignment IDs per collection reference.

        Returns:
            The number of IDs removed.
        """
        everything = self.get_all_settings()
        removed = 0
        for reference, settings in everything.items():
            valid = valid_assignment_ids.get(reference, ())
            classes = dict(settings.classes or {})
            for key, entry in list(classes.items()):
                if not entry.item_order:
                    continue
                kept = [i for i in entry.item_order if i in valid]
                removed += len(entry.item_order) - len(kept)
                entry.item_order = kept or None
                classes[key] = entry
            settings.classes = classes or None
        if removed:
            logger.warning("Removed %d orphaned manual-order entries", removed)
            self.save_all_settings(everything)
        return removed

    def export_metadata(self, identifier: CollectionIdentifier, title: str = "") -> SyllabusExport:
        return SyllabusExport(title=title, metadata=self.get_settings(identifier))

    def import_metadata(self, identifier: CollectionIdentifier, payload: t.Union[str, t.Mapping[str, t.Any]]) -> CollectionSettings:
        """Merge exported settings into a collection.

        Accepts a :class:`SyllabusExport` document or a bare settings object,
        as JSON text or already decoded. Imported fields win; classes are
        merged field by field.

        Raises:
            InvalidSettingsError: If the payload is not valid JSON or fails validation.
        """
        try:
            data = json.loads(payload) if isinstance(payload, str) else dict(payload)
        except json.JSONDecodeError as e:
            raise InvalidSettingsError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidSettingsError("Imported metadata must be an object")

        try:
            if "metadata" in data:
                incoming = SyllabusExport.model_validate(data).metadata
            else:
                incoming = CollectionSettings.model_validate(data)
        except ValidationError as e:
            raise InvalidSettingsError(f"Invalid syllabus metadata: {e}") from e

        def apply(settings: CollectionSettings) -> None:
            for field in ("description", "locked", "priorities"):
                value = getattr(incoming, field)
                if value is not None:
                    setattr(settings, field, value)
            if incoming.nomenclature is not None:
                settings.nomenclature = incoming.nomenclature.strip().lower() or None
            if incoming.classes:
                classes = dict(settings.classes or {})
                for key, entry in incoming.classes.items():
                    current = classes.get(key) or ClassMetadata()
                    classes[key] = current.model_copy(update=entry.model_dump(exclude_none=True))
                settings.classes = classes

        return self._update(identifier, apply)
