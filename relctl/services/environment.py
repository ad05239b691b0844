"""Shared dependency environments, keyed by manifest hash.

Installing dependencies is by far the slowest part of a deploy, and most
deploys do not touch the manifest. Environments therefore live outside the
releases, in ``envs/<hash>/``, and a release only holds a ``.venv`` symlink
to the one matching its manifest.

- An environment is installed only when the manifest hash differs from the
  recorded MANIFEST_HASH marker and no complete environment exists for it.
- An environment counts as complete once the completion marker is written,
  which happens after the install command succeeded.
- Releases reference environments through their ``.venv`` link. An
  environment is never evicted while any release directory links to it.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from relctl.core.config import DependencyConfig
from relctl.core.result import Err, Ok, Result
from relctl.core.timeouts import INSTALL_TIMEOUT_SECONDS
from relctl.output.console import ConsoleProtocol, Style
from relctl.platform.files import atomic_symlink, read_symlink, remove_tree
from relctl.platform.process import run as run_process

from .commands import render_command
from .errors import BuildError
from .state import DeployState

__all__ = ["EnvironmentCache", "manifest_digest", "VENV_LINK"]

VENV_LINK = ".venv"
COMPLETE_MARKER = ".relctl-complete"


def manifest_digest(manifest: Path) -> str | None:
    """SHA-256 of the manifest file, or None if the release has none."""
    try:
        return hashlib.sha256(manifest.read_bytes()).hexdigest()
    except FileNotFoundError:
        return None


class EnvironmentCache:
    """Content-addressed dependency environments under ``envs_dir``.

    Args:
        envs_dir: Directory holding one environment per manifest hash.
        state: Where the last installed manifest hash is recorded.
        config: Manifest name and the create/install command templates.
        console: Progress output.
        timeout: Limit for each create/install command, in seconds.
    """

    def __init__(
        self,
        *,
        envs_dir: Path,
        state: DeployState,
        config: DependencyConfig,
        console: ConsoleProtocol,
        timeout: float = INSTALL_TIMEOUT_SECONDS,
    ) -> None:
        self.envs_dir = envs_dir
        self._state = state
        self._config = config
        self._console = console
        self._timeout = timeout

    def env_path(self, digest: str) -> Path:
        return self.envs_dir / digest[:16]

    def is_complete(self, env: Path) -> bool:
        return (env / COMPLETE_MARKER).exists()

    def ensure(self, release_path: Path, *, release_id: str) -> Result[Path | None, BuildError]:
        """Make sure an environment exists for the release's manifest.

        A complete environment for the same hash is reused as is, so running
        this twice with an unchanged manifest installs once.

        Args:
            release_path: Release directory holding the manifest.
            release_id: Reported in errors.

        Returns:
            Ok(env path), Ok(None) when the release has no manifest, or
            Err(BuildError) when the install failed.
        """
        manifest = release_path / self._config.manifest
        digest = manifest_digest(manifest)
        if digest is None:
            self._console.print(f"no {self._config.manifest}, skipping dependencies", Style.DIM)
            return Ok(None)

        env = self.env_path(digest)
        if self.is_complete(env):
            if self._state.manifest_hash() == digest:
                self._console.print(f"dependencies unchanged ({digest[:12]})", Style.DIM)
            else:
                self._console.print(f"reusing environment {env.name}", Style.DIM)
                self._record(digest)
            return Ok(env)

        result = self._install(env, manifest, release_path, release_id=release_id)
        if isinstance(result, Err):
            return result
        self._record(digest)
        return Ok(env)

    def attach(self, release_path: Path, env: Path) -> None:
        """Link the environment into the release.

        Raises:
            OSError: the link could not be created.
        """
        atomic_symlink(release_path / VENV_LINK, env.resolve())

    def references(self, release_paths: Iterable[Path]) -> Counter[Path]:
        """Number of releases linking to each environment."""
        counts: Counter[Path] = Counter()
        for path in release_paths:
            target = read_symlink(path / VENV_LINK)
            if target is not None:
                counts[target.resolve()] += 1
        return counts

    def prune_unreferenced(self, release_paths: Iterable[Path]) -> list[Path]:
        """Delete environments no release links to. Returns what was removed.

        The environment recorded in the MANIFEST_HASH marker is always kept:
        it is the one the next deploy will most likely reuse.
        """
        if not self.envs_dir.is_dir():
            return []
        referenced = set(self.references(release_paths))
        recorded = self._state.manifest_hash()
        keep = self.env_path(recorded).resolve() if recorded else None

        removed: list[Path] = []
        for env in sorted(self.envs_dir.iterdir()):
            if not env.is_dir() or env.resolve() in referenced or env.resolve() == keep:
                continue
            try:
                remove_tree(env)
            except OSError as e:
                self._console.warning(f"could not remove environment {env.name}: {e}")
                continue
            removed.append(env)
        return removed

    def _record(self, digest: str) -> None:
        try:
            self._state.write_manifest_hash(digest)
        except OSError as e:
            # Stale marker only costs a redundant check next time
            self._console.warning(f"could not record manifest hash: {e}")

    def _install(
        self, env: Path, manifest: Path, release_path: Path, *, release_id: str
    ) -> Result[None, BuildError]:
        self._console.info(f"installing dependencies into {env}")
        if env.exists():
            # Left behind by an interrupted install
            try:
                remove_tree(env)
            except OSError as e:
                return Err(BuildError(message=f"cannot reset {env}: {e}", release_id=release_id))
        env.parent.mkdir(parents=True, exist_ok=True)

        values = {
            "python": self._config.python,
            "venv": str(env),
            "manifest": str(manifest),
            "release": str(release_path),
        }
        for template in (self._config.create, self._config.install):
            if not template:
                continue
            cmd = render_command(template, values)
            result = run_process(cmd, cwd=release_path, timeout=self._timeout)
            if isinstance(result, Err):
                return Err(
                    BuildError(
                        message=f"dependency install failed: {result.error.detail}",
                        release_id=release_id,
                        hint=f"command: {' '.join(cmd)}",
                    )
                )

        try:
            env.mkdir(parents=True, exist_ok=True)
            (env / COMPLETE_MARKER).write_text(manifest.read_text(encoding="utf-8"), encoding="utf-8")
        except OSError as e:
            return Err(BuildError(message=f"cannot finalize {env}: {e}", release_id=release_id))
        return Ok(None)
