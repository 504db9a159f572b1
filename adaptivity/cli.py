"""
Typer CLI for the adaptivity engine.

Commands:
    adaptivity select SLOT SESSION     - Dry-run a selection from JSON files
    adaptivity validate-guard EXPR     - Check that guard text parses
    adaptivity templates               - List the built-in guard templates

Usage:
    adaptivity --help
    adaptivity select slot.json session.json --policy policy.json
    adaptivity select slot.json session.json --write-session session.json
    adaptivity validate-guard "session.metrics.accEWMA < 0.7"
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from adaptivity.exceptions import NoVariantsError
from adaptivity.guard import GUARD_TEMPLATES, validate_guard_expression
from adaptivity.models import Policy, Slot
from adaptivity.selector import VariantSelector
from adaptivity.session import create_session

app = typer.Typer(
    help="adaptivity: explainable content variant selection",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show engine debug logs"),
) -> None:
    """Configure logging for every command."""
    logger.remove()
    logger.add(
        _stderr_sink,
        level="DEBUG" if verbose else "WARNING",
        format="<level>{message}</level>",
    )


def _stderr_sink(message: str) -> None:
    # resolve sys.stderr per message so redirected streams are honored
    sys.stderr.write(message)


def _load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(code=2)


# ========================================
# SELECTION
# ========================================


@app.command("select")
def select_command(
    slot_file: Path = typer.Argument(..., help="JSON file describing the slot"),
    session_file: Path = typer.Argument(..., help="JSON file with the (partial) session"),
    policy_file: Optional[Path] = typer.Option(None, "--policy", "-p", help="JSON policy file"),
    trace: bool = typer.Option(True, "--trace/--no-trace", help="Record guard and score values"),
    write_session: Optional[Path] = typer.Option(
        None, "--write-session", help="Write the session with its new sticky record here"
    ),
) -> None:
    """
    Run one selection and explain it.

    Examples:
        adaptivity select slot.json session.json
        adaptivity select slot.json session.json --no-trace
    """
    slot = Slot.model_validate(_load_json(slot_file))
    session = create_session(_load_json(session_file))
    policy = Policy.model_validate(_load_json(policy_file)) if policy_file else Policy(
        version=session.policy.version
    )

    try:
        result = VariantSelector().select(slot, session, policy, trace=trace)
    except NoVariantsError as e:
        rprint(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Slot {slot.id}", show_header=True)
    table.add_column("Variant", style="cyan")
    table.add_column("Guard", justify="center")
    table.add_column("Score", justify="right")
    table.add_column("Chosen", justify="center")

    for variant in slot.variants:
        guard = result.why.guards.get(variant.id)
        score = result.why.score.get(variant.id)
        table.add_row(
            variant.id,
            "-" if guard is None else ("[green]pass[/green]" if guard else "[red]fail[/red]"),
            "-" if score is None else f"{score:.3f}",
            "[bold green]✓[/bold green]" if variant.id == result.variant_id else "",
        )

    console.print(table)
    rprint(f"\n[bold]Selected:[/bold] {result.variant_id}")
    console.print_json(data=result.to_dict())

    if write_session:
        write_session.write_text(
            json.dumps(session.to_dict(), indent=2), encoding="utf-8"
        )
        logger.info(f"Session written to {write_session}")


# ========================================
# GUARD AUTHORING
# ========================================


@app.command("validate-guard")
def validate_guard_command(
    expression: str = typer.Argument(..., help="Guard expression to check"),
) -> None:
    """Check that a guard expression parses. Exits 1 if it does not."""
    validation = validate_guard_expression(expression)
    if validation.valid:
        rprint("[bold green]✓ Valid guard[/bold green]")
        return
    rprint(f"[red]✗ Invalid guard:[/red] {validation.error}")
    rprint("  Unparseable guards evaluate to false and hide their variant.")
    raise typer.Exit(code=1)


@app.command("templates")
def templates_command() -> None:
    """List the built-in guard templates."""
    table = Table(title="Guard Templates", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Expression")
    for name, expression in GUARD_TEMPLATES.items():
        table.add_row(name, expression)
    console.print(table)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
