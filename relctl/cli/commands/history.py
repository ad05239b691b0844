"""History command - recent deploy and rollback outcomes."""

from __future__ import annotations

import typer

from relctl.cli.context import build_context
from relctl.core.structured import get_str
from relctl.output.console import Style
from relctl.services.state import DeployState


def history(
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of runs to show"),
) -> None:
    """Show the most recent runs, newest first."""
    ctx = build_context()
    entries = DeployState(ctx.layout).read_history(limit)
    if not entries:
        ctx.console.print("No runs recorded", Style.DIM)
        return

    for entry in entries:
        when = get_str(entry, "finished_at") or get_str(entry, "started_at") or "?"
        operation = get_str(entry, "operation") or "?"
        status = get_str(entry, "status") or "?"
        release = get_str(entry, "release") or "-"
        ref = get_str(entry, "ref")
        line = f"{when}  {operation:<8} {status:<18} {release}"
        if ref:
            line += f"  {ref}"
        match status:
            case "success":
                ctx.console.print(line)
            case "partial_failure":
                ctx.console.print(line, Style.WARNING)
            case _:
                ctx.console.print(line, Style.ERROR)
