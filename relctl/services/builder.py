"""Release builder: materialize a new release from a resolved revision.

Steps, none of which touch the active-release pointer:

1. check free disk space on the releases volume
2. create ``releases/<id>/`` with pending metadata
3. export the revision's tracked files, minus development artifacts
4. copy runtime configuration from ``shared/``
5. attach the shared dependency environment (installing it if needed)

A release that fails after step 2 stays on disk for inspection. Its
metadata remains ``pending``/``failed``, which keeps it out of activation
and rollback.
"""

from __future__ import annotations

import shutil
from dataclasses import replace

from relctl.core.config import Config
from relctl.core.layout import DeployLayout
from relctl.core.result import Err, Ok, Result
from relctl.output.console import ConsoleProtocol, Style

from .environment import EnvironmentCache
from .errors import BuildError
from .model import Release, ReleaseStatus, ResolvedRevision
from .releases import ReleaseStore
from .revision import RevisionSource

__all__ = ["ReleaseBuilder", "MIN_FREE_BYTES"]

MIN_FREE_BYTES = 256 * 1024 * 1024


class ReleaseBuilder:
    def __init__(
        self,
        *,
        layout: DeployLayout,
        config: Config,
        source: RevisionSource,
        store: ReleaseStore,
        environments: EnvironmentCache,
        console: ConsoleProtocol,
        min_free_bytes: int = MIN_FREE_BYTES,
    ) -> None:
        self._layout = layout
        self._config = config
        self._source = source
        self._store = store
        self._environments = environments
        self._console = console
        self._min_free_bytes = min_free_bytes

    def build(self, revision: ResolvedRevision) -> Result[Release, BuildError]:
        """Materialize ``revision`` as a new pending release.

        Returns:
            Ok(release) ready for preflight, or Err(BuildError). A release
            directory that was already created is marked failed and kept.
        """
        space = self._check_disk_space()
        if isinstance(space, Err):
            return space

        try:
            release = self._store.create(revision=revision.sha, ref=revision.ref)
        except OSError as e:
            return Err(BuildError(message=f"cannot create release directory: {e}"))
        self._console.info(f"building release {release.id} from {revision.ref} ({revision.short})")

        result = self._populate(release)
        if isinstance(result, Err):
            self._mark_failed(release)
        return result

    def _populate(self, release: Release) -> Result[Release, BuildError]:
        exported = self._source.export(release.revision, release.path, self._config.source.exclude)
        if isinstance(exported, Err):
            return Err(
                BuildError(
                    message=f"cannot export {release.revision[:12]}: {exported.error.message}",
                    release_id=release.id,
                )
            )

        copied = self._copy_runtime_files(release)
        if isinstance(copied, Err):
            return copied

        env_result = self._environments.ensure(release.path, release_id=release.id)
        if isinstance(env_result, Err):
            return env_result
        env = env_result.value

        updated = release
        if env is not None:
            try:
                self._environments.attach(release.path, env)
            except OSError as e:
                return Err(
                    BuildError(message=f"cannot link environment: {e}", release_id=release.id)
                )
            updated = replace(release, env_hash=env.name)
            try:
                self._store.save(updated)
            except OSError as e:
                return Err(BuildError(message=f"cannot write metadata: {e}", release_id=release.id))

        self._console.success(f"built release {release.id}")
        return Ok(updated)

    def _check_disk_space(self) -> Result[None, BuildError]:
        target = self._layout.releases_dir
        probe = target if target.exists() else self._layout.root
        try:
            free = shutil.disk_usage(probe).free
        except OSError as e:
            return Err(BuildError(message=f"cannot stat {probe}: {e}"))
        if free < self._min_free_bytes:
            return Err(
                BuildError(
                    message=(
                        f"insufficient disk space on {probe}: {free // (1024 * 1024)} MiB free, "
                        f"{self._min_free_bytes // (1024 * 1024)} MiB required"
                    ),
                    hint="Run `relctl prune` or free space on the releases volume",
                )
            )
        return Ok(None)

    def _copy_runtime_files(self, release: Release) -> Result[None, BuildError]:
        shared = self._layout.shared_dir
        for rel in self._config.runtime_files:
            src = shared / rel
            dest = release.path / rel
            if not src.exists():
                # Presence is enforced by preflight, not here
                self._console.print(f"shared file not found: {src}", Style.DIM)
                continue
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                if src.is_dir():
                    shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(src, dest)
            except OSError as e:
                return Err(
                    BuildError(message=f"cannot copy runtime file {rel}: {e}", release_id=release.id)
                )
        return Ok(None)

    def _mark_failed(self, release: Release) -> None:
        try:
            self._store.mark(release, ReleaseStatus.FAILED)
        except OSError as e:
            self._console.warning(f"could not mark release {release.id} failed: {e}")
