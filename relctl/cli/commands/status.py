"""Status and releases commands - what is live on this host."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from relctl.cli.context import build_context
from relctl.services.model import ReleaseStatus
from relctl.services.releases import ReleaseStore
from relctl.services.state import DeployState
from relctl.services.supervisor import SystemdSupervisor

_console = Console(highlight=False)

_STATUS_COLORS = {
    ReleaseStatus.PASSED: "green",
    ReleaseStatus.PENDING: "yellow",
    ReleaseStatus.FAILED: "red",
}


def status() -> None:
    """Show the active release, deployed revision and service state."""
    ctx = build_context()
    state = DeployState(ctx.layout)
    store = ReleaseStore(ctx.layout.releases_dir)

    active = state.active_release_id()
    revision = state.deployed_revision()

    _console.print()
    _console.print(f"[bold]root[/bold]      {ctx.layout.root}")
    if active is None:
        _console.print("[bold]active[/bold]    [dim]none[/dim]")
    else:
        release = store.get(active)
        ref = f" ({release.ref})" if release is not None and release.ref else ""
        _console.print(f"[bold]active[/bold]    [green]{active}[/green]{ref}")
    _console.print(f"[bold]revision[/bold]  {revision[:12] if revision else '[dim]unknown[/dim]'}")
    _console.print(f"[bold]releases[/bold]  {len(store.ids())} on disk")

    supervisor = SystemdSupervisor(ctx.config.supervisor.systemctl, cwd=ctx.layout.root)
    _console.print()
    for svc in ctx.config.services:
        running = supervisor.is_active(svc.unit)
        mark = Text("active", style="green") if running else Text("inactive", style="red")
        line = Text(f"  {svc.name:<12} {svc.unit:<28} ")
        line.append(mark)
        line.append(f"  {svc.restart}", style="dim")
        _console.print(line)


def releases() -> None:
    """List releases on disk, newest first."""
    ctx = build_context()
    state = DeployState(ctx.layout)
    store = ReleaseStore(ctx.layout.releases_dir)
    active = state.active_release_id()

    all_releases = store.releases()
    if not all_releases:
        _console.print("[dim]No releases[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("")
    table.add_column("release")
    table.add_column("ref")
    table.add_column("revision")
    table.add_column("status")
    table.add_column("activated")

    for release in all_releases:
        marker = Text("*", style="green bold") if release.id == active else Text("")
        status_text = Text(release.status.value, style=_STATUS_COLORS[release.status])
        if release.rolled_back_at:
            status_text.append(" (rolled back)", style="dim")
        table.add_row(
            marker,
            release.id,
            release.ref or "-",
            release.revision[:12] or "-",
            status_text,
            release.activated_at or "-",
        )
    _console.print(table)
