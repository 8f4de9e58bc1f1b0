"""Tool Advisor CLI entry point."""

import typer
from rich.console import Console

from . import __version__
from .analyze_command import analyze_command
from .feedback import app as feedback_app
from .index_commands import show_command, stats_command
from .recommend_command import recommend_command
from .scan_command import scan_command

app = typer.Typer(
    name="tool-advisor",
    help="Tool Advisor - find the right agent, command, skill or MCP tool for a task",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"tool-advisor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Tool Advisor - find the right agent, command, skill or MCP tool for a task."""
    pass


app.command(name="scan")(scan_command)
app.command(name="recommend")(recommend_command)
app.command(name="stats")(stats_command)
app.command(name="show")(show_command)
app.command(name="analyze")(analyze_command)

# Register the feedback subcommand group
app.add_typer(feedback_app, name="feedback")


if __name__ == "__main__":
    app()
