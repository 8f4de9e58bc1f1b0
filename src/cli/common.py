"""Shared CLI plumbing: option definitions and advisor construction."""

from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor import ToolAdvisor
from tool_advisor.config import ConfigurationError, configure_logging, load_config

from .console import print_error

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Config file (default: ~/.claude/tool-advisor.yaml)",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    help="Enable debug logging",
)


def get_advisor(config_path: Path | None = None, verbose: bool = False) -> ToolAdvisor:
    """Load configuration, set up logging and build the advisor (exit 1 on bad config)."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)

    level = "DEBUG" if verbose else config.get("logging", {}).get("level", "WARNING")
    configure_logging(level)

    try:
        return ToolAdvisor.from_config(config=config)
    except ConfigurationError as e:
        print_error(escape(str(e)))
        raise typer.Exit(1)
