"""
MCP server exposing syllabus assignments and class metadata as tools.

Tools operate on the JSON-backed local library named by
``SYLLABUS_LIBRARY_PATH``; every write is saved back to that file.
"""
from __future__ import annotations

import typing as t

from fastmcp import FastMCP

from local_host import LocalLibrary
from syllabus_data.config import SyllabusConfig
from syllabus_data.logging_config import configure_logging
from syllabus_data.manager import SyllabusManager
from syllabus_data.models import Assignment, CollectionSettings


mcp = FastMCP("SyllabusServer")

_manager: t.Optional[SyllabusManager] = None


def get_manager() -> SyllabusManager:
    """Return the server's engine, opening the library on first use."""
    global _manager
    if _manager is None:
        config = SyllabusConfig.from_env()
        library = LocalLibrary.load(config.library_path)
        _manager = SyllabusManager(library.host, config)
        _manager.initialize()
    return _manager


def set_manager(manager: t.Optional[SyllabusManager]) -> None:
    """Serve ``manager`` instead of the library from the environment."""
    global _manager
    _manager = manager


# -----------------------------
# Raw implementations
# -----------------------------

def _list_class_groups(collection_id: int) -> dict[str, t.Any]:
    manager = get_manager()
    collection = manager.require_collection(collection_id)
    forms = manager.settings.get_nomenclature_formatted(collection_id)
    groups = manager.get_class_groups(collection_id)
    return {
        "collection": {"id": collection.id, "name": collection.name},
        "nomenclature": forms.singular,
        "classGroups": [
            {
                "classNumber": group.class_number,
                "title": group.metadata.title if group.metadata else None,
                "items": [
                    {"itemId": e.item.id, "title": e.item.title, "assignment": e.assignment.to_json_dict()}
                    for e in group.item_assignments
                ],
            }
            for group in groups.class_groups
        ],
        "furtherReading": [{"itemId": item.id, "title": item.title} for item in groups.further_reading],
    }


def _get_item_assignments(item_id: int, collection_id: int) -> list[Assignment]:
    manager = get_manager()
    manager.require_collection(collection_id)
    return manager.get_item_assignments(manager.require_item(item_id), collection_id, sort=True)


async def _add_assignment(
    item_id: int,
    collection_id: int,
    class_number: t.Optional[int] = None,
    priority: t.Optional[str] = None,
    class_instruction: t.Optional[str] = None,
) -> t.Optional[Assignment]:
    manager = get_manager()
    manager.require_collection(collection_id)
    return await manager.add_assignment(
        item_id, collection_id, class_number=class_number, priority=priority, class_instruction=class_instruction
    )


async def _update_assignment(
    item_id: int, collection_id: int, assignment_id: str, changes: dict[str, t.Any]
) -> t.Optional[Assignment]:
    manager = get_manager()
    manager.require_collection(collection_id)
    return await manager.update_assignment(item_id, collection_id, assignment_id, **changes)


async def _remove_assignment(item_id: int, collection_id: int, assignment_id: t.Optional[str] = None) -> bool:
    manager = get_manager()
    manager.require_collection(collection_id)
    if assignment_id is None:
        return await manager.remove_all_assignments(item_id, collection_id)
    return await manager.remove_assignment_by_id(item_id, collection_id, assignment_id)


def _get_syllabus_metadata(collection_id: int) -> CollectionSettings:
    manager = get_manager()
    manager.require_collection(collection_id)
    return manager.settings.get_settings(collection_id)


def _set_class_metadata(
    collection_id: int,
    class_number: int,
    title: t.Optional[str] = None,
    description: t.Optional[str] = None,
    reading_date: t.Optional[str] = None,
) -> dict[str, t.Any]:
    manager = get_manager()
    manager.require_collection(collection_id)
    if title is not None:
        manager.settings.set_class_title(collection_id, class_number, title)
    if description is not None:
        manager.settings.set_class_description(collection_id, class_number, description)
    if reading_date is not None:
        manager.settings.set_class_reading_date(collection_id, class_number, reading_date)
    entry = manager.settings.get_class_metadata(collection_id, class_number)
    return entry.model_dump(by_alias=True, exclude_none=True) if entry else {}


def _set_class_item_order(collection_id: int, class_number: int, assignment_ids: list[str]) -> list[str]:
    manager = get_manager()
    manager.require_collection(collection_id)
    manager.settings.set_class_item_order(collection_id, class_number, assignment_ids)
    return [e.assignment.id for e in manager.get_all_class_assignments(collection_id, class_number)]


def _add_class(collection_id: int, class_number: t.Optional[int] = None) -> int:
    manager = get_manager()
    manager.require_collection(collection_id)
    if class_number is None:
        class_number = len(manager.get_full_class_number_range(collection_id)) + 1
    manager.settings.create_additional_class(collection_id, class_number)
    return class_number


def _import_syllabus_metadata(collection_id: int, metadata_json: str) -> CollectionSettings:
    manager = get_manager()
    manager.require_collection(collection_id)
    return manager.settings.import_metadata(collection_id, metadata_json)


# -----------------------------
# MCP Tools
# -----------------------------

@mcp.tool()
def list_class_groups(collection_id: int) -> dict[str, t.Any]:
    """
    List a collection's classes in display order with their items and assignments.

    Items without any assignment are returned under "furtherReading".
    """
    return _list_class_groups(collection_id)


@mcp.tool()
def get_item_assignments(item_id: int, collection_id: int) -> list[Assignment]:
    """Get the assignments of one item in one collection, sorted."""
    return _get_item_assignments(item_id, collection_id)


@mcp.tool()
async def add_assignment(
    item_id: int,
    collection_id: int,
    class_number: t.Optional[int] = None,
    priority: t.Optional[str] = None,
    class_instruction: t.Optional[str] = None,
) -> t.Optional[Assignment]:
    """
    Schedule an item for a class. Priority is a built-in id (course-info,
    essential, recommended, optional) or a custom priority id of the collection.
    """
    return await _add_assignment(item_id, collection_id, class_number, priority, class_instruction)


@mcp.tool()
async def update_assignment(
    item_id: int, collection_id: int, assignment_id: str, changes: dict[str, t.Any]
) -> t.Optional[Assignment]:
    """
    Change fields of an assignment. Keys: class_number, priority,
    class_instruction, status. A null value clears the field.
    """
    return await _update_assignment(item_id, collection_id, assignment_id, changes)


@mcp.tool()
async def remove_assignment(item_id: int, collection_id: int, assignment_id: t.Optional[str] = None) -> bool:
    """Remove one assignment, or all of the item's assignments in the collection when no id is given."""
    return await _remove_assignment(item_id, collection_id, assignment_id)


@mcp.tool()
def get_syllabus_metadata(collection_id: int) -> CollectionSettings:
    """Get a collection's syllabus settings (description, priorities, classes)."""
    return _get_syllabus_metadata(collection_id)


@mcp.tool()
def set_class_metadata(
    collection_id: int,
    class_number: int,
    title: t.Optional[str] = None,
    description: t.Optional[str] = None,
    reading_date: t.Optional[str] = None,
) -> dict[str, t.Any]:
    """Set the title, description or reading date (YYYY-MM-DD) of a class."""
    return _set_class_metadata(collection_id, class_number, title, description, reading_date)


@mcp.tool()
def set_class_item_order(collection_id: int, class_number: int, assignment_ids: list[str]) -> list[str]:
    """Set the manual order of a class by assignment id; returns the resulting order."""
    return _set_class_item_order(collection_id, class_number, assignment_ids)


@mcp.tool()
def add_class(collection_id: int, class_number: t.Optional[int] = None) -> int:
    """Add an empty class to the range (the next number when none is given)."""
    return _add_class(collection_id, class_number)


@mcp.tool()
def import_syllabus_metadata(collection_id: int, metadata_json: str) -> CollectionSettings:
    """Merge exported syllabus metadata (JSON text) into a collection."""
    return _import_syllabus_metadata(collection_id, metadata_json)


if __name__ == "__main__":
    configure_logging()
    mcp.run()
