"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, NoReturn

import typer

from relctl.output.errors import print_error, print_outcome

if TYPE_CHECKING:
    from relctl.cli.context import CLIContext
    from relctl.services.model import RunOutcome


def finish_run(outcome: RunOutcome, ctx: CLIContext, *, json_output: bool) -> NoReturn:
    """Report a deploy/rollback outcome and exit with its code."""
    if outcome.error is not None and not outcome.failures:
        print_error(outcome.error, ctx.console)
    print_outcome(outcome, ctx.console)
    if json_output:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
    exit_with_code(int(outcome.exit_code))


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)
