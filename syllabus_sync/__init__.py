# -*- coding: utf-8 -*-
from .registry import StoreRegistry, list_store_kinds
from .stores import ExternalStore, canonical_json, make_store

__all__ = ["ExternalStore", "StoreRegistry", "canonical_json", "list_store_kinds", "make_store"]
