"""
Serialisation of the per-item assignment map.

The map lives as one JSON string in the item's extra field. Two stored shapes
exist per collection:

- the current one, an array of assignments;
- the legacy one, a single assignment object.

Decoding classifies each collection's payload into :class:`ArrayShape` or
:class:`LegacyObjectShape` and migrates it with a ``match`` statement. A
malformed payload never raises: it is logged and decodes to ``None``.
"""
from __future__ import annotations

import json
import logging
import typing as t
from dataclasses import dataclass

from pydantic import ValidationError

from .identity import ensure_ids
from .models import Assignment, AssignmentMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArrayShape:
    """Current format: a list of assignments for one collection."""
    entries: list[Assignment]


@dataclass(frozen=True)
class LegacyObjectShape:
    """Old format: one assignment object per collection."""
    entry: Assignment


CollectionPayload = t.Union[ArrayShape, LegacyObjectShape]


@dataclass
class DecodedAssignmentMap:
    """Result of decoding a stored payload."""
    data: AssignmentMap
    # True when the stored text differs from what a write would produce
    # (legacy shape, missing IDs or empty arrays)
    needs_write_back: bool = False


def parse_collection_payload(value: t.Any) -> CollectionPayload:
    """Classify and validate the stored value for one collection.

    Raises:
        ValidationError: If an assignment fails validation.
        TypeError: If the value is neither a list nor an object.
    """
    if isinstance(value, list):
        return ArrayShape(entries=[Assignment.model_validate(entry) for entry in value])
    if isinstance(value, dict):
        return LegacyObjectShape(entry=Assignment.model_validate(value))
    raise TypeError(f"Unsupported assignment payload type: {type(value).__name__}")


def migrate_collection_payload(payload: CollectionPayload) -> tuple[list[Assignment], bool]:
    """Return ``(entries, migrated)`` for a classified payload.

    A non-empty legacy object becomes a one-element list, an empty legacy
    object becomes an empty list. Array payloads pass through unchanged.
    """
    match payload:
        case ArrayShape(entries=entries):
            return list(entries), False
        case LegacyObjectShape(entry=entry):
            return ([] if entry.is_empty else [entry]), True
        case _:
            raise TypeError(f"Unknown payload shape: {payload!r}")


def decode_assignment_map(raw: t.Optional[str]) -> t.Optional[DecodedAssignmentMap]:
    """Parse, validate and migrate a stored assignment map.

    Args:
        raw: The JSON text stored on the item, or ``None``.

    Returns:
        The decoded map, or ``None`` when nothing is stored or the payload is malformed.
    """
    if not raw:
        return None

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Error parsing syllabus data: %s (%r)", e, raw[:200])
        return None

    if not isinstance(parsed, dict):
        logger.warning("Error parsing syllabus data: expected an object, got %s", type(parsed).__name__)
        return None

    data = AssignmentMap()
    needs_write_back = False
    try:
        for collection_id, value in parsed.items():
            entries, migrated = migrate_collection_payload(parse_collection_payload(value))
            with_ids = ensure_ids(entries)
            if migrated or not entries or any(a is not b for a, b in zip(with_ids, entries)):
                needs_write_back = True
            data.set(collection_id, with_ids)
    except (ValidationError, TypeError) as e:
        logger.warning("Error validating syllabus data: %s", e)
        return None

    if needs_write_back:
        logger.debug("Syllabus data needs migration write-back: %s", raw[:200])
    return DecodedAssignmentMap(data=data, needs_write_back=needs_write_back)


def normalize_assignment_map(data: AssignmentMap) -> AssignmentMap:
    """Return a copy of ``data`` with IDs guaranteed and empty collections pruned."""
    return AssignmentMap({collection_id: ensure_ids(entries) for collection_id, entries in data.items()})


def encode_assignment_map(data: AssignmentMap) -> str:
    """Serialise the whole map (IDs guaranteed) to the stored JSON text."""
    return json.dumps(normalize_assignment_map(data).to_json_dict(), ensure_ascii=False)
