"""Rollback controller: return to the previous activated release."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from relctl.core.config import ServiceConfig
from relctl.core.result import Err, Ok, Result
from relctl.output.console import ConsoleProtocol

from .activation import ActivationSwitch
from .errors import ActivationError, InsufficientHistory
from .model import ReconcileReport, Release
from .reconciler import ServiceReconciler
from .releases import ReleaseStore
from .state import DeployState

__all__ = ["RollbackController", "RollbackResult"]


@dataclass(frozen=True, slots=True)
class RollbackResult:
    target: Release
    previous_id: str | None
    report: ReconcileReport


class RollbackController:
    """Repoint ``current`` at the release that was live before this one.

    Only releases that were once activated, and have not themselves been
    rolled back from, are candidates. The target is not re-validated: it
    passed preflight when it was first activated. Every service restarts
    because the diff between the abandoned release and the target is not
    trusted.
    """

    def __init__(
        self,
        *,
        store: ReleaseStore,
        state: DeployState,
        activation: ActivationSwitch,
        reconciler: ServiceReconciler,
        services: Sequence[ServiceConfig],
        console: ConsoleProtocol,
    ) -> None:
        self._store = store
        self._state = state
        self._activation = activation
        self._reconciler = reconciler
        self._services = services
        self._console = console

    def target(self) -> Result[Release, InsufficientHistory]:
        history = self._store.history()
        if len(history) < 2:
            return Err(InsufficientHistory(available=len(history)))

        active_id = self._state.active_release_id()
        if active_id is None:
            return Ok(history[1])
        for release in history:
            if release.id < active_id:
                return Ok(release)
        return Err(
            InsufficientHistory(
                available=len(history),
                hint=f"active release {active_id} is the oldest activated release",
            )
        )

    def rollback(self) -> Result[RollbackResult, InsufficientHistory | ActivationError]:
        target_result = self.target()
        if isinstance(target_result, Err):
            return target_result
        target = target_result.value

        previous_id = self._state.active_release_id()
        self._console.info(f"rolling back {previous_id or '(none)'} -> {target.id}")

        swapped = self._state.point_to(target)
        if isinstance(swapped, Err):
            return swapped
        self._console.success(f"current -> {target.id}")

        if previous_id is not None:
            previous = self._store.get(previous_id)
            if previous is not None:
                try:
                    self._store.mark_rolled_back(previous)
                except OSError as e:
                    self._console.warning(f"could not mark {previous_id} as rolled back: {e}")

        self._activation.record_revision(target.revision)
        report = self._reconciler.reconcile(self._services, None)
        return Ok(RollbackResult(target=target, previous_id=previous_id, report=report))
