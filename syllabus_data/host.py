"""
Interfaces of the host application the syllabus engine runs inside.

The engine never owns items, collections or preferences. It reaches them
through the protocols below; ``local_host`` provides an in-memory
implementation used by the tools and the tests.
"""
from __future__ import annotations

import typing as t
from dataclasses import dataclass


# Notifier event types
EVENT_ADD = "add"
EVENT_MODIFY = "modify"
EVENT_DELETE = "delete"
EVENT_REFRESH = "refresh"
EVENT_SELECT = "select"

# Notifier object types
TYPE_ITEM = "item"
TYPE_COLLECTION = "collection"
TYPE_COLLECTION_ITEM = "collection-item"
TYPE_SETTING = "setting"
TYPE_TAB = "tab"


@t.runtime_checkable
class Item(t.Protocol):
    id: int
    key: str
    library_id: int
    title: str
    version: int

    def is_regular_item(self) -> bool: ...


@t.runtime_checkable
class Collection(t.Protocol):
    id: int
    key: str
    library_id: int
    name: str


class ItemStore(t.Protocol):
    def get_by_id(self, item_id: int) -> t.Optional[Item]: ...

    def get_extra_field(self, item: Item, key: str) -> t.Optional[str]: ...

    async def set_extra_field(self, item: Item, key: str, value: str) -> None: ...

    async def save(self, item: Item) -> None: ...


class CollectionStore(t.Protocol):
    def get_by_id(self, collection_id: int) -> t.Optional[Collection]: ...

    def get_by_library_and_key(self, library_id: int, key: str) -> t.Optional[Collection]: ...

    def get_child_items(self, collection: Collection) -> list[Item]: ...

    def get_all(self) -> list[Collection]: ...


PrefCallback = t.Callable[[t.Any], None]


class PreferenceStore(t.Protocol):
    def get(self, key: str) -> t.Any: ...

    def set(self, key: str, value: t.Any) -> None: ...

    def observe(self, key: str, callback: PrefCallback) -> int: ...

    def unobserve(self, observer_id: int) -> None: ...


class NotifierObserver(t.Protocol):
    def notify(
        self,
        event: str,
        type: str,
        ids: t.Sequence[t.Any],
        extra_data: t.Mapping[str, t.Any],
    ) -> None: ...


class Notifier(t.Protocol):
    def register_observer(self, observer: NotifierObserver, types: t.Sequence[str]) -> int: ...

    def unregister_observer(self, observer_id: int) -> None: ...


class SelectionProvider(t.Protocol):
    def get_selected_collection(self) -> t.Optional[Collection]: ...

    def get_selected_items(self) -> list[Item]: ...


@dataclass
class Host:
    """Bundle of the collaborators one engine instance talks to."""
    items: ItemStore
    collections: CollectionStore
    prefs: PreferenceStore
    notifier: Notifier
    selection: t.Optional[SelectionProvider] = None


class CallbackObserver:
    """Adapts a plain callable to the notifier observer protocol."""

    def __init__(self, callback: t.Callable[[str, str, t.Sequence[t.Any], t.Mapping[str, t.Any]], None]) -> None:
        self._callback = callback

    def notify(self, event: str, type: str, ids: t.Sequence[t.Any], extra_data: t.Mapping[str, t.Any]) -> None:
        self._callback(event, type, ids, extra_data)
