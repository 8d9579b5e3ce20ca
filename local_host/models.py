# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, field


NON_REGULAR_ITEM_TYPES = ("note", "attachment", "annotation")


@dataclass
class Item:
    id: int
    key: str
    title: str
    library_id: int = 1
    item_type: str = "journalArticle"
    version: int = 0
    extra: dict[str, str] = field(default_factory=dict)   # extra-field key -> raw value
    deleted: bool = False

    def is_regular_item(self) -> bool:
        return self.item_type not in NON_REGULAR_ITEM_TYPES


@dataclass
class Collection:
    id: int
    key: str
    name: str
    library_id: int = 1
    item_ids: list[int] = field(default_factory=list)
    deleted: bool = False
