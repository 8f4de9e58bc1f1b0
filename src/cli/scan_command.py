"""Scan command - rebuild the capability index from plugin directories."""

from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor import StoreWriteError
from tool_advisor.models import ScanMode

from .common import CONFIG_OPTION, VERBOSE_OPTION, get_advisor
from .console import console, create_table, print_error, print_success, print_warning

MAX_ERRORS_SHOWN = 10


def scan_command(
    location: list[str] | None = typer.Option(
        None,
        "--location",
        "-l",
        help="Location to scan (repeatable; default: configured locations)",
    ),
    incremental: bool = typer.Option(
        False,
        "--incremental",
        "-i",
        help="Rescan only the given locations and keep entries from the others",
    ),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Scan plugin and skill directories and rebuild the capability index.

    Learned usage data (counts, success rates, boosts) survives rescans.
    """
    advisor = get_advisor(config, verbose)
    mode = ScanMode.INCREMENTAL if incremental else ScanMode.FULL
    targets = [str(Path(loc).expanduser()) for loc in location] if location else None

    console.print(f"[bold]Scanning ({mode.value})...[/bold]")
    try:
        index = advisor.scan(locations=targets, mode=mode)
    except StoreWriteError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    stats = index.statistics
    print_success(
        f"Indexed {index.total_capabilities} capabilities from {index.total_plugins} plugins "
        f"in {stats.scan_duration_ms}ms"
    )
    console.print(
        f"[dim]+{stats.capabilities_added} new | {stats.capabilities_updated} updated | "
        f"-{stats.capabilities_removed} removed | {stats.capabilities_retained} retained[/dim]"
    )
    if stats.partial:
        print_warning("Scan stopped early; unscanned entries were kept from the previous index.")

    if stats.errors:
        print_warning(f"{len(stats.errors)} components could not be read:")
        table = create_table()
        table.add_column("Path", style="dim")
        table.add_column("Error", style="red")
        for error in stats.errors[:MAX_ERRORS_SHOWN]:
            table.add_row(escape(error.path), escape(error.error))
        console.print(table)
        if len(stats.errors) > MAX_ERRORS_SHOWN:
            console.print(f"[dim]... and {len(stats.errors) - MAX_ERRORS_SHOWN} more[/dim]")
