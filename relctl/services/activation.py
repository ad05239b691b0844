"""Activation switch: the commit point of a deployment."""

from __future__ import annotations

from relctl.core.result import Err, Ok, Result
from relctl.output.console import ConsoleProtocol

from .errors import ActivationError
from .model import Release, ReleaseStatus
from .releases import ReleaseStore
from .state import DeployState

__all__ = ["ActivationSwitch"]


class ActivationSwitch:
    """Repoint ``current`` at a validated release and record its revision.

    Once ``activate`` returns Ok the deployment is committed. The revision
    marker is written afterwards on a best-effort basis; if that write fails
    the next deploy simply restarts more than it needs to.
    """

    def __init__(self, *, state: DeployState, store: ReleaseStore, console: ConsoleProtocol) -> None:
        self._state = state
        self._store = store
        self._console = console

    def activate(self, release: Release) -> Result[Release, ActivationError]:
        if release.status is not ReleaseStatus.PASSED:
            return Err(
                ActivationError(
                    release_id=release.id,
                    message=f"release {release.id} has not passed preflight ({release.status.value})",
                )
            )

        swapped = self._state.point_to(release)
        if isinstance(swapped, Err):
            return swapped
        self._console.success(f"current -> {release.id}")

        try:
            release = self._store.mark_activated(release)
        except OSError as e:
            # Without the mark the release is not offered as a rollback target
            self._console.warning(f"could not record activation of {release.id}: {e}")

        self.record_revision(release.revision)
        return Ok(release)

    def record_revision(self, revision: str) -> None:
        try:
            self._state.write_deployed_revision(revision)
        except OSError as e:
            self._console.warning(f"could not write revision marker (next deploy restarts all): {e}")
