# -*- coding: utf-8 -*-
"""Command line front end for syllabus assignments in a local library file."""
from __future__ import annotations

import asyncio
import json
import typing as t
from pathlib import Path

import click
from rich.panel import Panel
from rich.text import Text

from local_host import LocalLibrary
from syllabus_data.config import SyllabusConfig
from syllabus_data.errors import InvalidSettingsError, SyllabusError
from syllabus_data.logging_config import configure_logging
from syllabus_data.manager import SyllabusManager
from syllabus_cli.utils import console, create_class_table, display_json, truncate_title


class CliState:
    def __init__(self, library_path: str, verbose: bool) -> None:
        self.config = SyllabusConfig.from_env()
        self.config.library_path = library_path
        if verbose:
            self.config.log_level = "DEBUG"
        self.library = LocalLibrary.load(library_path)
        self.manager = SyllabusManager(self.library.host, self.config)
        self.manager.initialize()

    def run(self, coro: t.Awaitable[t.Any]) -> t.Any:
        """Run a coroutine, then flush debounced and background writes."""
        async def runner() -> t.Any:
            result = await coro
            await self.manager.shutdown()
            return result

        return asyncio.run(runner())


pass_state = click.make_pass_decorator(CliState)


def _fail(message: str) -> t.NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(1)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--library", "library_path",
    type=click.Path(dir_okay=False),
    envvar="SYLLABUS_LIBRARY_PATH",
    default="library.json",
    show_default=True,
    help="JSON library file to read and update.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, library_path: str, verbose: bool) -> None:
    """Manage syllabus assignments, classes and collection settings."""
    state = CliState(library_path, verbose)
    configure_logging(state.config.log_level, console=console)
    ctx.obj = state


@main.command()
@click.argument("collection_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print the class groups as JSON.")
@pass_state
def show(state: CliState, collection_id: int, as_json: bool) -> None:
    """Show the classes of a collection with their scheduled items."""
    manager = state.manager
    try:
        collection = manager.require_collection(collection_id)
    except SyllabusError as e:
        _fail(str(e))

    groups = manager.get_class_groups(collection_id)
    if as_json:
        data = {
            "collection": collection.name,
            "classGroups": [
                {
                    "classNumber": group.class_number,
                    "items": [
                        {"itemId": e.item.id, "title": e.item.title, "assignment": e.assignment.to_json_dict()}
                        for e in group.item_assignments
                    ],
                }
                for group in groups.class_groups
            ],
            "furtherReading": [item.id for item in groups.further_reading],
        }
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    description = manager.settings.get_collection_description(collection_id)
    header = Text(collection.name, style="bold blue")
    if description:
        header.append(f"\n{description}", style="white")
    console.print(Panel.fit(header, border_style="blue"))

    for group in groups.class_groups:
        console.print(create_class_table(manager, collection_id, group))

    if groups.further_reading:
        console.print("\n[bold]Further reading[/bold]")
        for item in groups.further_reading:
            console.print(Text(f"  • {truncate_title(item.title)}"))


@main.command()
@click.argument("item_id", type=int)
@click.argument("collection_id", type=int)
@click.option("--class", "class_number", type=click.IntRange(min=1), help="Class number.")
@click.option("--priority", help="Priority id (course-info, essential, recommended, optional or custom).")
@click.option("--instruction", help="Reading instruction.")
@pass_state
def assign(
    state: CliState,
    item_id: int,
    collection_id: int,
    class_number: t.Optional[int],
    priority: t.Optional[str],
    instruction: t.Optional[str],
) -> None:
    """Add an assignment for ITEM_ID in COLLECTION_ID."""
    try:
        state.manager.require_collection(collection_id)
        assignment = state.run(state.manager.add_assignment(
            item_id, collection_id, class_number=class_number, priority=priority, class_instruction=instruction
        ))
    except (SyllabusError, InvalidSettingsError) as e:
        _fail(str(e))

    if assignment is None:
        _fail("Give at least one of --class, --priority or --instruction.")
    console.print(f"[green]✓[/green] Added assignment [bold]{assignment.id}[/bold]")


@main.command()
@click.argument("collection_id", type=int)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), help="Write to a file instead of stdout.")
@pass_state
def export(state: CliState, collection_id: int, output: t.Optional[str]) -> None:
    """Export a collection's syllabus settings as JSON."""
    try:
        collection = state.manager.require_collection(collection_id)
    except SyllabusError as e:
        _fail(str(e))

    exported = state.manager.settings.export_metadata(collection_id, title=collection.name)
    content = json.dumps(exported.model_dump(by_alias=True, exclude_none=True), indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(content, encoding="utf-8")
        console.print(f"[green]✓[/green] Exported to {output}")
    else:
        click.echo(content)


@main.command(name="import")
@click.argument("collection_id", type=int)
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@pass_state
def import_(state: CliState, collection_id: int, file: str) -> None:
    """Merge exported syllabus settings from FILE into a collection."""
    try:
        state.manager.require_collection(collection_id)
        settings = state.manager.settings.import_metadata(collection_id, Path(file).read_text(encoding="utf-8"))
    except (SyllabusError, InvalidSettingsError) as e:
        _fail(str(e))

    if state.config.log_level == "DEBUG":
        display_json("Imported settings", settings.to_json_dict())
    console.print(f"[green]✓[/green] Imported syllabus metadata into collection {collection_id}")


@main.command()
@pass_state
def cleanup(state: CliState) -> None:
    """Drop manual-order entries that point at removed assignments."""
    removed = state.manager.cleanup_settings()
    console.print(f"[green]✓[/green] Removed {removed} orphaned entries")


if __name__ == "__main__":
    main()
