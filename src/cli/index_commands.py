"""Index inspection commands: stats and show."""

from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor.models import format_timestamp

from .common import CONFIG_OPTION, VERBOSE_OPTION, get_advisor
from .console import console, create_table, print_error, print_panel


def stats_command(
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show capability index statistics.

    Displays counts by type, the last scan summary and the most used capabilities.
    """
    advisor = get_advisor(config, verbose)
    index = advisor.load_index()
    if index is None:
        print_error("No capability index found. Run 'tool-advisor scan' first.")
        raise typer.Exit(1)

    by_type: dict[str, int] = {}
    for capability in index.capabilities.values():
        by_type[capability.type.value] = by_type.get(capability.type.value, 0) + 1
    stats = index.statistics

    content = (
        f"Index: {escape(str(advisor.store.path))}\n"
        f"Last scan: {format_timestamp(index.last_scan)}\n"
        f"Plugins: {index.total_plugins}\n"
        f"Capabilities: {index.total_capabilities}\n\n"
        "By Type:\n"
        + "".join(f"  {name}: {count}\n" for name, count in sorted(by_type.items()))
        + "\nLast Scan:\n"
        f"  Duration: {stats.scan_duration_ms}ms\n"
        f"  Plugins scanned: {stats.plugins_scanned} (skipped {stats.plugins_skipped})\n"
        f"  Errors: {len(stats.errors)}{' (partial)' if stats.partial else ''}"
    )
    print_panel("Capability Index Statistics", content, style="blue")

    used = sorted(
        (c for c in index.capabilities.values() if c.usage_count > 0),
        key=lambda c: (-c.usage_count, c.id),
    )[:10]
    if used:
        table = create_table("Most Used")
        table.add_column("Capability", style="cyan")
        table.add_column("Uses", justify="right")
        table.add_column("Success", justify="right")
        table.add_column("Last Used", style="dim")
        for capability in used:
            table.add_row(
                escape(capability.id),
                str(capability.usage_count),
                f"{capability.success_rate:.0%}",
                format_timestamp(capability.last_used) or "-",
            )
        console.print(table)


def show_command(
    capability_id: str = typer.Argument(..., help="Capability id, e.g. ops:deploy"),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show details of one indexed capability."""
    advisor = get_advisor(config, verbose)
    capability = advisor.get_capability(capability_id)
    if capability is None:
        print_error(f"Capability '{escape(capability_id)}' not found.")
        raise typer.Exit(1)

    content_lines = [
        f"[bold]Type:[/bold] {capability.type.value}",
        f"[bold]Plugin:[/bold] {escape(capability.plugin)}",
        f"[bold]Path:[/bold] {escape(capability.path)}",
    ]
    if capability.description:
        content_lines.append(f"[bold]Description:[/bold] {escape(capability.description)}")
    invocation = capability.metadata.get("invocation")
    if invocation:
        content_lines.append(f"[bold]Invoke:[/bold] {escape(str(invocation))}")
    if capability.keywords:
        keywords = sorted(capability.keywords)
        shown = ", ".join(keywords[:15])
        if len(keywords) > 15:
            shown += f" (+{len(keywords) - 15} more)"
        content_lines.append(f"[bold]Keywords:[/bold] {escape(shown)}")

    content_lines.extend(
        [
            "",
            f"[bold]Uses:[/bold] {capability.usage_count}",
            f"[bold]Last used:[/bold] {format_timestamp(capability.last_used) or 'never'}",
            f"[bold]Success rate:[/bold] {capability.success_rate:.0%}",
            f"[bold]Confidence boost:[/bold] {capability.confidence_boost:+.2f}",
        ]
    )
    print_panel(escape(capability.id), "\n".join(content_lines), style="blue")
