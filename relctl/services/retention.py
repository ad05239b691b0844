"""Retention: prune releases outside the retention window."""

from __future__ import annotations

from dataclasses import dataclass

from relctl.output.console import ConsoleProtocol, Style
from relctl.platform.files import remove_tree

from .environment import EnvironmentCache
from .releases import ReleaseStore
from .state import DeployState

__all__ = ["RetentionManager", "RetentionReport"]


@dataclass(frozen=True, slots=True)
class RetentionReport:
    deleted: tuple[str, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()
    environments_removed: tuple[str, ...] = ()


class RetentionManager:
    """Keep the ``keep`` newest releases, plus the active one wherever it is.

    Releases are ranked by id (newest first), whatever their status. A
    delete failure is reported and the run continues with the next release.
    Dependency environments left without any referencing release are
    evicted afterwards.
    """

    def __init__(
        self,
        *,
        store: ReleaseStore,
        state: DeployState,
        environments: EnvironmentCache | None,
        console: ConsoleProtocol,
        keep: int,
    ) -> None:
        if keep < 1:
            raise ValueError(f"keep must be >= 1, got {keep}")
        self._store = store
        self._state = state
        self._environments = environments
        self._console = console
        self._keep = keep

    def candidates(self) -> list[str]:
        """Ids that ``prune`` would delete, oldest last."""
        active = self._state.active_release_id()
        return [rid for rid in self._store.ids()[self._keep :] if rid != active]

    def prune(self) -> RetentionReport:
        deleted: list[str] = []
        failed: list[tuple[str, str]] = []
        for release_id in self.candidates():
            try:
                remove_tree(self._store.releases_dir / release_id)
            except OSError as e:
                self._console.warning(f"could not delete release {release_id}: {e}")
                failed.append((release_id, str(e)))
                continue
            self._console.print(f"deleted release {release_id}", Style.DIM)
            deleted.append(release_id)

        removed_envs: list[str] = []
        if self._environments is not None:
            remaining = [self._store.releases_dir / rid for rid in self._store.ids()]
            removed_envs = [p.name for p in self._environments.prune_unreferenced(remaining)]
            for name in removed_envs:
                self._console.print(f"deleted environment {name}", Style.DIM)

        return RetentionReport(
            deleted=tuple(deleted),
            failed=tuple(failed),
            environments_removed=tuple(removed_envs),
        )
