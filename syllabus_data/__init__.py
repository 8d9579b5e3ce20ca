# -*- coding: utf-8 -*-
from .config import SyllabusConfig
from .errors import CollectionNotFoundError, InvalidSettingsError, ItemNotFoundError, SyllabusError
from .host import Host
from .manager import SyllabusManager
from .models import Assignment, AssignmentMap, ClassMetadata, CollectionSettings, CustomPriority

__all__ = [
    "Assignment",
    "AssignmentMap",
    "ClassMetadata",
    "CollectionNotFoundError",
    "CollectionSettings",
    "CustomPriority",
    "Host",
    "InvalidSettingsError",
    "ItemNotFoundError",
    "SyllabusConfig",
    "SyllabusError",
    "SyllabusManager",
]
