"""
Root Typer application for the jobloom CLI.

``run`` calls a tool function ``fn(conf, *args)`` with a fresh job
configuration; the process exits 0 when the function returns a truthy
value.
"""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table
from typer import Typer

from jobloom.core.conf import Configuration, load_object
from jobloom.core.errors import LoomError
from jobloom.core.logging import configure_from_settings, get_logger
from jobloom.core.settings import get_settings

app = Typer(
    name="jobloom",
    help="jobloom: multi-stage batch jobs from plain Python functions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobloom import __version__

        typer.echo(f"jobloom {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobloom CLI: run job graphs and inspect slot capacity."""


# ── Commands ─────────────────────────────────────────────────────────────


def _parse_define(define: list[str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for item in define:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {item!r}", param_hint="--define")
        values[key] = value
    return values


@app.command()
def run(
    target: str = typer.Argument(..., help="Tool function as MODULE:FUNCTION."),
    args: list[str] = typer.Argument(None, help="Arguments passed to the tool function."),
    define: list[str] = typer.Option([], "--define", "-D", help="Configuration entry KEY=VALUE."),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """Run a tool function with a fresh job configuration."""
    configure_from_settings(get_settings())

    try:
        fn = load_object(target)
    except LoomError as e:
        err_console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(2) from e

    conf = Configuration(_parse_define(define))
    try:
        result = fn(conf, *(args or []))
    except LoomError as e:
        logger.error("cli.run_failed", target=target, **e.to_dict())
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps(result, default=str, indent=2))
    elif result is not None:
        console.print(result)
    raise typer.Exit(0 if result else 1)


@app.command()
def slots() -> None:
    """Show the provisioned slot classes per role."""
    from jobloom.execution.slots import SLOT_CAPACITY, Role, slot_class

    table = Table(title="Task slots")
    table.add_column("Role", style="cyan")
    table.add_column("Classes")
    table.add_column("Capacity", justify="right")
    for role in Role:
        first, last = slot_class(role, 0), slot_class(role, SLOT_CAPACITY - 1)
        table.add_row(role.value, f"{first.__name__} … {last.__name__}", str(SLOT_CAPACITY))
    console.print(table)


if __name__ == "__main__":
    app()
