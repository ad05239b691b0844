"""Prune command - apply the retention policy now."""

from __future__ import annotations

import typer

from relctl.cli.commands._helpers import exit_with_code
from relctl.cli.context import build_context
from relctl.core.errors import ErrorCode
from relctl.output.console import Style
from relctl.services.environment import EnvironmentCache
from relctl.services.releases import ReleaseStore
from relctl.services.retention import RetentionManager
from relctl.services.state import DeployState


def prune(
    keep: int | None = typer.Option(
        None, "--keep", min=1, help="Releases to keep (default: retention.keep from config)"
    ),
) -> None:
    """Delete old releases and unused dependency environments."""
    ctx = build_context()
    state = DeployState(ctx.layout)
    manager = RetentionManager(
        store=ReleaseStore(ctx.layout.releases_dir),
        state=state,
        environments=EnvironmentCache(
            envs_dir=ctx.layout.envs_dir,
            state=state,
            config=ctx.config.dependencies,
            console=ctx.console,
        ),
        console=ctx.console,
        keep=keep or ctx.config.retention,
    )

    report = manager.prune()
    if not report.deleted and not report.environments_removed and not report.failed:
        ctx.console.print("Nothing to prune", Style.DIM)
        return

    ctx.console.success(
        f"removed {len(report.deleted)} release(s), "
        f"{len(report.environments_removed)} environment(s)"
    )
    if report.failed:
        exit_with_code(int(ErrorCode.PARTIAL_FAILURE))
