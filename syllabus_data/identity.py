"""
Stable identifiers for assignment entries.

IDs are ``assignment-<uuid7>``: a time-ordered UUID, so IDs minted later sort
after earlier ones. Uniqueness is the invariant callers rely on; ordering is a
convenience for debugging stored data.
"""
from __future__ import annotations

import logging
import secrets
import time
import typing as t
import uuid

from .models import Assignment

logger = logging.getLogger(__name__)

ID_PREFIX = "assignment-"


def uuid7() -> uuid.UUID:
    """Return a version 7 UUID (48-bit millisecond timestamp + 74 random bits)."""
    unix_ms = time.time_ns() // 1_000_000
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)
    value = (
        (unix_ms & ((1 << 48) - 1)) << 80
        | 0x7 << 76          # version
        | rand_a << 64
        | 0b10 << 62         # RFC 4122 variant
        | rand_b
    )
    return uuid.UUID(int=value)


def new_assignment_id() -> str:
    return f"{ID_PREFIX}{uuid7()}"


def ensure_ids(entries: t.Iterable[Assignment]) -> list[Assignment]:
    """Return the entries with every missing or repeated ``id`` replaced by a fresh one.

    Entries that already carry a unique ID are returned untouched (same
    object), so calling this on an already valid list is a no-op.

    Args:
        entries: Assignments of one item in one collection.

    Returns:
        A new list in the same order.
    """
    seen: set[str] = set()
    result: list[Assignment] = []
    for entry in entries:
        if not entry.id or entry.id in seen:
            fresh = new_assignment_id()
            logger.debug("Minted assignment id %s (was %r)", fresh, entry.id)
            entry = entry.model_copy(update={"id": fresh})
        seen.add(entry.id)
        result.append(entry)
    return result
