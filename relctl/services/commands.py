"""Command template rendering for configured hooks."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def render_command(template: tuple[str, ...], values: Mapping[str, str]) -> list[str]:
    """Substitute ``{name}`` placeholders in each argument.

    Unknown placeholders are left as-is so that literal braces in arguments
    (JSON, shell snippets) survive.
    """

    def _sub(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return [_PLACEHOLDER_RE.sub(_sub, arg) for arg in template]


def release_env(release_path: Path, base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for commands run inside a release.

    The release's virtualenv is activated the way ``bin/activate`` would.
    """
    env = dict(os.environ if base is None else base)
    venv = release_path / ".venv"
    env["VIRTUAL_ENV"] = str(venv)
    env["PATH"] = os.pathsep.join([str(venv / "bin"), env.get("PATH", "")])
    env.pop("PYTHONHOME", None)
    return env
