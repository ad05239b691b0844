"""Rollback command - point back at the previous good release."""

from __future__ import annotations

import typer

from relctl.cli.commands._helpers import finish_run
from relctl.cli.context import build_context
from relctl.services.orchestrator import DeployOrchestrator


def rollback(
    json_output: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
) -> None:
    """Reactivate the previous release and restart every service."""
    ctx = build_context(json_output=json_output)
    orchestrator = DeployOrchestrator.create(ctx.layout, ctx.config, ctx.console)
    finish_run(orchestrator.rollback(), ctx, json_output=json_output)
