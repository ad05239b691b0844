from __future__ import annotations

import os
from pathlib import Path

import typer

from relctl import __version__
from relctl.cli.commands.deploy_cmd import deploy
from relctl.cli.commands.history import history
from relctl.cli.commands.prune import prune
from relctl.cli.commands.rollback_cmd import rollback
from relctl.cli.commands.status import releases, status
from relctl.cli.context import CONFIG_ENV_VAR
from relctl.core.errors import ErrorCode
from relctl.core.layout import ROOT_ENV_VAR


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(deploy)
app.command()(rollback)
app.command()(status)
app.command()(releases)
app.command()(prune)
app.command()(history)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    root: Path | None = typer.Option(
        None,
        "--root",
        help=f"Deploy root (default: ${ROOT_ENV_VAR}, then the current directory)",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Config file (default: <root>/relctl.toml)",
    ),
) -> None:
    if root is not None:
        try:
            resolved = root.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --root: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not resolved.is_dir():
            typer.echo(f"error: --root '{resolved}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        os.environ[ROOT_ENV_VAR] = str(resolved)

    if config is not None:
        path = config.expanduser()
        if not path.is_file():
            typer.echo(f"error: --config '{path}' does not exist", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        os.environ[CONFIG_ENV_VAR] = str(path.resolve())


def main() -> None:
    app()
