# -*- coding: utf-8 -*-
from __future__ import annotations

import typing as t

from syllabus_data.manager import SyllabusManager
from . import factories
from .stores import ExternalStore


# Store kinds mapped to the factory that builds them
STORE_FACTORIES: dict[str, t.Callable[..., ExternalStore]] = {
    "collection_items": factories.collection_items_store,
    "item_assignments": factories.item_assignments_store,
    "item": factories.item_store,
    "syllabus_metadata": factories.syllabus_metadata_store,
    "class_metadata": factories.class_metadata_store,
    "collection_title": factories.collection_title_store,
    "collection_description": factories.collection_description_store,
    "compact_mode": factories.compact_mode_store,
    "reader_mode": factories.reader_mode_store,
    "selected_item_ids": factories.selected_item_ids_store,
    "selected_collection": factories.selected_collection_store,
    "syllabi": factories.syllabi_store,
}


class StoreRegistry:
    """Hands out one shared store per (kind, scope) so consumers share subscriptions."""

    def __init__(self, manager: SyllabusManager) -> None:
        self.manager = manager
        self._stores: dict[tuple, ExternalStore] = {}

    def get(self, kind: str, *scope: t.Any) -> ExternalStore:
        try:
            factory = STORE_FACTORIES[kind]
        except KeyError:
            raise ValueError(f"Unknown store kind: {kind}") from None
        key = (kind, *scope)
        store = self._stores.get(key)
        if store is None:
            store = self._stores[key] = factory(self.manager, *scope)
        return store

    def prune(self) -> int:
        """Forget stores nobody subscribes to. Returns how many were dropped."""
        idle = [key for key, store in self._stores.items() if store.subscriber_count == 0]
        for key in idle:
            del self._stores[key]
        return len(idle)

    def __len__(self) -> int:
        return len(self._stores)


def list_store_kinds() -> list[str]:
    """Return the names accepted by :meth:`StoreRegistry.get`."""
    return sorted(STORE_FACTORIES)
