"""Display helpers for the syllabus command line."""
from __future__ import annotations

import json
import typing as t

from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from syllabus_data.manager import SyllabusManager
from syllabus_data.ordering import ClassGroup

console = Console()


def truncate_title(title: str, max_length: int = 45) -> str:
    """Truncate title to max_length characters, adding ellipsis if needed."""
    if len(title) <= max_length:
        return title
    return title[:max_length - 3] + "..."


def display_json(title: str, data: t.Any) -> None:
    """Display JSON data in a panel."""
    console.print(Panel(JSON(json.dumps(data, indent=2, ensure_ascii=False)), title=title, expand=True))


def class_heading(manager: SyllabusManager, collection_id: int, group: ClassGroup) -> str:
    if group.class_number is None:
        return "Unscheduled"
    forms = manager.settings.get_nomenclature_formatted(collection_id)
    heading = f"{forms.singular_capitalized} {group.class_number}"
    if group.metadata is not None:
        if group.metadata.title:
            heading += f": {group.metadata.title}"
        if group.metadata.reading_date:
            heading += f" ({group.metadata.reading_date})"
    return heading


def rich_color(color: str) -> str:
    """Expand #RGB to #RRGGBB, the only hex form rich parses."""
    if len(color) == 4 and color.startswith("#"):
        return "#" + "".join(ch * 2 for ch in color[1:])
    return color


def create_class_table(manager: SyllabusManager, collection_id: int, group: ClassGroup) -> Table:
    """Create a table listing the items of one class in display order."""
    table = Table(title=Text(class_heading(manager, collection_id, group)), show_header=True, header_style="bold magenta")
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Priority", style="yellow")
    table.add_column("Instruction", style="dim")

    for entry in group.item_assignments:
        priority = entry.assignment.priority
        label = manager.settings.get_priority_label_for_collection(collection_id, priority)
        color = manager.settings.get_priority_color_for_collection(collection_id, priority)
        table.add_row(
            str(entry.item.id),
            Text(truncate_title(entry.item.title)),
            Text(label, style=rich_color(color)) if color else Text(label),
            Text(entry.assignment.class_instruction or ""),
        )
    return table
