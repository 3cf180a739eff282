"""
CLI utility helpers: output formatting.
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from runguard.core.errors import RunGuardError

console = Console()
err_console = Console(stderr=True)


def output_json(payload: Any) -> None:
    """Print ``payload`` as JSON on stdout."""
    console.print_json(json.dumps(payload, default=str))


def output_error(error: RunGuardError, *, exit_code: int = 1) -> NoReturn:
    """Print a runguard error on stderr and exit."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.__class__.__name__}): {escape(error.message)}",
        soft_wrap=True,
    )
    err_console.print_json(json.dumps(error.to_dict(), default=str))
    raise typer.Exit(code=exit_code)
