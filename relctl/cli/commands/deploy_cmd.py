"""Deploy command - build, validate and activate a revision."""

from __future__ import annotations

import json

import typer

from relctl.cli.commands._helpers import exit_with_code, finish_run
from relctl.cli.context import CLIContext, build_context
from relctl.core.errors import ErrorCode
from relctl.core.result import Err
from relctl.output.console import Style
from relctl.output.errors import print_error
from relctl.services.orchestrator import DeployOrchestrator
from relctl.services.reconciler import plan_restarts


def deploy(
    ref: str = typer.Argument(..., help="Branch, tag or commit to deploy"),
    restart_all: bool = typer.Option(
        False, "--restart-all", help="Restart every service regardless of what changed"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Resolve the revision and show the restart plan only"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
) -> None:
    """Deploy REF as a new release."""
    ctx = build_context(json_output=json_output)
    orchestrator = DeployOrchestrator.create(ctx.layout, ctx.config, ctx.console)

    if dry_run:
        _show_plan(ctx, orchestrator, ref, restart_all=restart_all, json_output=json_output)
        return

    finish_run(orchestrator.deploy(ref, restart_all=restart_all), ctx, json_output=json_output)


def _show_plan(
    ctx: CLIContext,
    orchestrator: DeployOrchestrator,
    ref: str,
    *,
    restart_all: bool,
    json_output: bool,
) -> None:
    planned = orchestrator.plan(ref)
    if isinstance(planned, Err):
        print_error(planned.error, ctx.console)
        exit_with_code(int(ErrorCode.PRECOMMIT_ABORT))
    revision, plan = planned.value
    if restart_all:
        plan = plan_restarts(ctx.config.services, None)

    ctx.console.header(f"plan for {ref} @ {revision.short}")
    if plan.full:
        ctx.console.print("no usable diff (or --restart-all): every service restarts", Style.DIM)
    for svc in plan.restart:
        reason = plan.reasons.get(svc.name)
        suffix = f": {reason}" if reason else ""
        ctx.console.print(f"  restart {svc.name} ({svc.restart}){suffix}")
    for svc in plan.untouched:
        ctx.console.print(f"  keep    {svc.name}", Style.DIM)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "ref": ref,
                    "revision": revision.sha,
                    "full": plan.full,
                    "restart": list(plan.names),
                    "untouched": [s.name for s in plan.untouched],
                },
                indent=2,
            )
        )
