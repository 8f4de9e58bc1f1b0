"""Feedback CLI commands for teaching the advisor which recommendations helped."""

from pathlib import Path

import typer
from rich.markup import escape

from tool_advisor import ValidationError
from tool_advisor.feedback import CapabilityNotFoundError, FeedbackKind
from tool_advisor.models import Capability

from .common import CONFIG_OPTION, VERBOSE_OPTION, get_advisor
from .console import console, print_error, print_success

app = typer.Typer(
    name="feedback",
    help="Record feedback on recommended capabilities",
    no_args_is_help=True,
)


def _record(
    capability_id: str,
    kind: FeedbackKind,
    config: Path | None,
    verbose: bool,
    outcome: int | None = None,
) -> Capability:
    advisor = get_advisor(config, verbose)
    try:
        return advisor.record_feedback(capability_id, kind, outcome)
    except CapabilityNotFoundError:
        print_error(f"Capability '{escape(capability_id)}' not found.")
        raise typer.Exit(1)
    except ValidationError as e:
        print_error(
            f"No usable capability index ({escape(str(e))}). Run 'tool-advisor scan' first."
        )
        raise typer.Exit(1)


@app.command(name="accept")
def accept_command(
    capability_id: str = typer.Argument(..., help="Capability that was used"),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Record that a recommendation was accepted."""
    capability = _record(capability_id, FeedbackKind.ACCEPTED, config, verbose)
    print_success(f"Accepted {escape(capability.id)} (used {capability.usage_count} times)")


@app.command(name="reject")
def reject_command(
    capability_id: str = typer.Argument(..., help="Capability that was declined"),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Record that a recommendation was declined."""
    capability = _record(capability_id, FeedbackKind.REJECTED, config, verbose)
    print_success(f"Rejected {escape(capability.id)}")
    console.print(f"[dim]Confidence boost: {capability.confidence_boost:+.2f}[/dim]")


@app.command(name="complete")
def complete_command(
    capability_id: str = typer.Argument(..., help="Capability whose task finished"),
    success: bool = typer.Option(
        ...,
        "--success/--failure",
        help="Whether the task succeeded",
    ),
    config: Path | None = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Record the outcome of a task performed with a capability."""
    capability = _record(
        capability_id, FeedbackKind.COMPLETED, config, verbose, outcome=int(success)
    )
    print_success(
        f"Recorded {'success' if success else 'failure'} for {escape(capability.id)} "
        f"(success rate {capability.success_rate:.0%})"
    )
