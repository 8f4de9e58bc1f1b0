"""Recommend command - suggest capabilities for a task description."""

import json
from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor import CapabilityType, RecommendationConstraints, Tier
from tool_advisor.formatter import format_recommendation

from .common import CONFIG_OPTION, VERBOSE_OPTION, get_advisor
from .console import console, create_table, print_error, print_info

TIER_STYLES = {
    Tier.AUTO_USE: "[green]auto-use[/green]",
    Tier.SUGGEST_ONE: "[cyan]suggest one[/cyan]",
    Tier.SUGGEST_MANY: "[yellow]suggest many[/yellow]",
    Tier.INSUFFICIENT: "[dim]insufficient[/dim]",
}


def recommend_command(
    query: str = typer.Argument(..., help="What you are trying to do"),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        "-x",
        help="Plugin name pattern to exclude (repeatable, fnmatch syntax)",
    ),
    capability_type: str | None = typer.Option(
        None,
        "--type",
        "-t",
        help="Only consider one type: agent, command, skill, hook, mcp_server, mcp_tool",
    ),
    min_relevance: float = typer.Option(
        0.0,
        "--min-relevance",
        help="Drop candidates scoring below this (0.0-1.0)",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the recommendation as JSON"),
    as_context: bool = typer.Option(
        False, "--context", help="Print XML context for hook injection"
    ),
    project: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Project directory whose detected stack is included as context",
    ),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Recommend the best agent, command, skill or MCP tool for a task."""
    preferred_type = None
    if capability_type:
        try:
            preferred_type = CapabilityType.parse(capability_type)
        except ValueError:
            print_error(f"Unknown capability type: {escape(capability_type)}")
            raise typer.Exit(1)

    advisor = get_advisor(config, verbose)
    recommendation = advisor.recommend(
        query,
        RecommendationConstraints(
            excluded_plugins=list(exclude or []),
            preferred_type=preferred_type,
            min_relevance=min_relevance,
        ),
        project_dir=project,
    )

    if as_json:
        typer.echo(json.dumps(recommendation.to_dict(), indent=2))
        return
    if as_context:
        typer.echo(format_recommendation(recommendation))
        return

    console.print(f"Tier: {TIER_STYLES[recommendation.tier]}")
    if recommendation.notice:
        print_info(escape(recommendation.notice))

    if recommendation.candidates:
        table = create_table()
        table.add_column("#", justify="right")
        table.add_column("Capability", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Score", justify="right")
        table.add_column("Invoke", style="green")
        for rank, candidate in enumerate(recommendation.candidates, 1):
            capability = candidate.capability
            table.add_row(
                str(rank),
                escape(capability.id),
                capability.type.value,
                f"{candidate.score:.0%}",
                escape(str(capability.metadata.get("invocation", ""))),
            )
        console.print(table)
        for candidate in recommendation.candidates:
            for reason in candidate.reasons:
                console.print(f"[dim]{escape(candidate.capability.id)}: {escape(reason)}[/dim]")

    for question in recommendation.clarifying_questions:
        console.print(f"? {escape(question)}")

    if recommendation.project and recommendation.project.technologies:
        stack = ", ".join(recommendation.project.names)
        console.print(f"[dim]Project stack: {escape(stack)}[/dim]")
