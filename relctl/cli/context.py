from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from relctl.core.config import Config, load_config, load_config_or_default
from relctl.core.errors import ErrorCode
from relctl.core.layout import DeployLayout, resolve_root
from relctl.core.result import Err
from relctl.output.console import ConsoleProtocol, RichConsole

CONFIG_ENV_VAR = "RELCTL_CONFIG"


@dataclass(frozen=True, slots=True)
class CLIContext:
    layout: DeployLayout
    config: Config
    console: ConsoleProtocol


def build_context(*, json_output: bool = False) -> CLIContext:
    """Resolve the deploy root and load its config.

    With ``json_output`` the console writes to stderr so stdout carries only
    the JSON document.
    """
    root = resolve_root()

    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        config_result = load_config(Path(explicit).expanduser())
    else:
        config_result = load_config_or_default(DeployLayout(root).config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    config = config_result.value
    return CLIContext(
        layout=DeployLayout(root, config.paths),
        config=config,
        console=RichConsole(stderr=json_output),
    )
