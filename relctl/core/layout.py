"""Deploy root detection and paths.

The deploy root holds everything relctl owns on a host:

    <root>/
        relctl.toml          optional config
        repo/                git clone the releases are exported from
        releases/<id>/       one immutable tree per release
        current -> releases/<id>
        envs/<hash>/         shared dependency environments
        shared/              runtime config copied into each release
        state/
            REVISION         last committed revision
            MANIFEST_HASH    manifest hash the latest env was built from
            history.jsonl    one outcome per run
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import CONFIG_FILENAME, PathsConfig

__all__ = ["DeployLayout", "resolve_root"]

ROOT_ENV_VAR = "RELCTL_ROOT"


@dataclass(frozen=True, slots=True)
class DeployLayout:
    root: Path
    paths: PathsConfig = field(default_factory=PathsConfig)

    def _path(self, rel: str) -> Path:
        p = Path(rel)
        return p if p.is_absolute() else self.root / p

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def repo_dir(self) -> Path:
        return self._path(self.paths.repo)

    @property
    def releases_dir(self) -> Path:
        return self._path(self.paths.releases)

    @property
    def current_link(self) -> Path:
        """The active-release pointer (a symlink)."""
        return self._path(self.paths.current)

    @property
    def envs_dir(self) -> Path:
        return self._path(self.paths.envs)

    @property
    def shared_dir(self) -> Path:
        return self._path(self.paths.shared)

    @property
    def state_dir(self) -> Path:
        return self._path(self.paths.state)

    @property
    def revision_marker(self) -> Path:
        return self.state_dir / "REVISION"

    @property
    def manifest_hash_marker(self) -> Path:
        return self.state_dir / "MANIFEST_HASH"

    @property
    def history_path(self) -> Path:
        return self.state_dir / "history.jsonl"

    def release_dir(self, release_id: str) -> Path:
        return self.releases_dir / release_id


def resolve_root(explicit: Path | None = None) -> Path:
    """Pick the deploy root: explicit flag, then $RELCTL_ROOT, then cwd."""
    if explicit is not None:
        return explicit.expanduser().resolve()
    env = os.environ.get(ROOT_ENV_VAR)
    if env:
        return Path(env).expanduser().resolve()
    return Path.cwd().resolve()
