"""
Exceptions raised at the host boundary of the syllabus engine.

Parse and missing-reference problems never surface as exceptions: they are
logged and degrade to "no data" or "unchanged data". Only failures the caller
must act on (an item or collection that does not exist, invalid user input)
are raised.
"""
from __future__ import annotations


class SyllabusError(RuntimeError):
    """Base class for errors propagated to callers of the syllabus engine."""


class ItemNotFoundError(SyllabusError):
    """Raised when a write targets an item the host does not know."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class CollectionNotFoundError(SyllabusError):
    """Raised when a write targets a collection the host does not know."""

    def __init__(self, identifier: object) -> None:
        super().__init__(f"Collection not found: {identifier}")
        self.identifier = identifier


class InvalidSettingsError(ValueError):
    """Raised for user input that would break a settings invariant."""
