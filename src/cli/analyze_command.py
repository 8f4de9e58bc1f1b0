"""Analyze command - detect the technology stack of a project."""

import json
from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor.project import ProjectAnalysisError

from .common import CONFIG_OPTION, VERBOSE_OPTION, get_advisor
from .console import console, create_table, print_error, print_info


def analyze_command(
    project_dir: Path = typer.Argument(
        Path("."),
        help="Project directory to analyze (default: current directory)",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the profile as JSON"),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Detect languages, frameworks and infrastructure used by a project.

    The profile grounds recommendations: pass the same directory to
    'tool-advisor recommend --project' to include it as context.
    """
    advisor = get_advisor(config, verbose)
    try:
        profile = advisor.analyze_project(project_dir)
    except ProjectAnalysisError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(profile.to_dict(), indent=2))
        return

    if not profile.technologies:
        print_info(f"No known technologies detected in {escape(profile.path)}")
        return

    table = create_table(f"Project: {escape(profile.project)}")
    table.add_column("Category", style="magenta")
    table.add_column("Technology", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Evidence", style="dim")
    for tech in profile.technologies:
        table.add_row(
            escape(tech.category),
            escape(tech.name),
            f"{tech.confidence:.0%}",
            escape(tech.evidence),
        )
    console.print(table)
