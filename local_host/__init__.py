# -*- coding: utf-8 -*-
from .models import Collection, Item
from .store import LocalLibrary

__all__ = ["Collection", "Item", "LocalLibrary"]
