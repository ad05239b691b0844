"""Tests for services/activation.py and services/rollback.py."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from relctl.core.config import ReloadConfig, ServiceConfig
from relctl.core.layout import DeployLayout
from relctl.core.result import Err, Ok
from relctl.output.console import MockConsole
from relctl.services import state as state_module
from relctl.services.activation import ActivationSwitch
from relctl.services.errors import ActivationError, InsufficientHistory
from relctl.services.model import Release, ReleaseStatus
from relctl.services.reconciler import ServiceReconciler
from relctl.services.releases import ReleaseStore
from relctl.services.rollback import RollbackController
from relctl.services.state import DeployState
from relctl.services.supervisor import MockSupervisor

SERVICES = (
    ServiceConfig(name="worker", unit="worker.service", triggers=("tasks/*",)),
    ServiceConfig(name="scheduler", unit="scheduler.service", triggers=("tasks/*",)),
)


def _clock() -> Callable[[], datetime]:
    now = [datetime(2026, 5, 1, tzinfo=UTC)]

    def tick() -> datetime:
        now[0] += timedelta(minutes=1)
        return now[0]

    return tick


class Harness:
    def __init__(self, root: Path) -> None:
        self.layout = DeployLayout(root)
        self.console = MockConsole()
        self.state = DeployState(self.layout)
        self.store = ReleaseStore(self.layout.releases_dir, clock=_clock())
        self.supervisor = MockSupervisor()
        self.activation = ActivationSwitch(state=self.state, store=self.store, console=self.console)
        self.rollback = RollbackController(
            store=self.store,
            state=self.state,
            activation=self.activation,
            reconciler=ServiceReconciler(
                supervisor=self.supervisor,
                reload=ReloadConfig(),
                console=self.console,
                sleep=lambda _: None,
            ),
            services=SERVICES,
            console=self.console,
        )

    def release(self, revision: str, status: ReleaseStatus = ReleaseStatus.PASSED) -> Release:
        return self.store.mark(self.store.create(revision=revision, ref="main"), status)

    def deployed(self, revision: str) -> Release:
        return self.activation.activate(self.release(revision)).unwrap()  # type: ignore[return-value]


@pytest.fixture
def h(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


class TestActivation:
    def test_activate_passed_release(self, h: Harness) -> None:
        release = h.release("a" * 40)

        result = h.activation.activate(release)

        assert isinstance(result, Ok)
        assert h.state.active_release_id() == release.id
        assert h.state.deployed_revision() == "a" * 40
        assert h.store.load(release.id).activated

    def test_refuses_unvalidated_release(self, h: Harness) -> None:
        for status in (ReleaseStatus.PENDING, ReleaseStatus.FAILED):
            release = h.release("b" * 40, status)
            result = h.activation.activate(release)
            assert isinstance(result, Err)
            assert isinstance(result.error, ActivationError)
        assert h.state.active_release_id() is None
        assert h.state.deployed_revision() is None

    def test_swap_failure_leaves_previous_release_live(
        self, h: Harness, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        first = h.deployed("a" * 40)
        second = h.release("b" * 40)

        def broken_symlink(link: Path, target: Path) -> None:
            raise PermissionError("read-only file system")

        monkeypatch.setattr(state_module, "atomic_symlink", broken_symlink)
        result = h.activation.activate(second)

        assert isinstance(result, Err)
        assert "read-only" in result.error.message
        assert h.state.active_release_id() == first.id
        assert h.state.deployed_revision() == "a" * 40

    def test_marker_write_failure_still_commits(
        self, h: Harness, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        release = h.release("a" * 40)

        def broken_marker(revision: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(h.state, "write_deployed_revision", broken_marker)
        result = h.activation.activate(release)

        assert isinstance(result, Ok)
        assert h.state.active_release_id() == release.id
        assert h.console.has_warning()


class TestRollback:
    def test_single_release_is_insufficient(self, h: Harness) -> None:
        only = h.deployed("a" * 40)

        result = h.rollback.rollback()

        assert isinstance(result, Err)
        assert isinstance(result.error, InsufficientHistory)
        assert result.error.available == 1
        assert h.state.active_release_id() == only.id
        assert h.supervisor.calls == []

    def test_no_releases(self, h: Harness) -> None:
        result = h.rollback.target()
        assert isinstance(result, Err)
        assert result.error.available == 0

    def test_rolls_back_to_previous_and_restarts_everything(self, h: Harness) -> None:
        first = h.deployed("a" * 40)
        second = h.deployed("b" * 40)

        result = h.rollback.rollback()

        assert isinstance(result, Ok)
        assert result.value.target.id == first.id
        assert result.value.previous_id == second.id
        assert h.state.active_release_id() == first.id
        assert h.state.deployed_revision() == "a" * 40
        assert h.store.load(second.id).rolled_back_at is not None
        assert h.supervisor.units_touched() == {"worker.service", "scheduler.service"}

    def test_failed_releases_are_skipped(self, h: Harness) -> None:
        first = h.deployed("a" * 40)
        h.release("f" * 40, ReleaseStatus.FAILED)
        h.deployed("b" * 40)

        assert h.rollback.target() == Ok(h.store.load(first.id))

    def test_repeated_rollback_walks_back(self, h: Harness) -> None:
        a = h.deployed("a" * 40)
        b = h.deployed("b" * 40)
        h.deployed("c" * 40)

        first = h.rollback.rollback()
        second = h.rollback.rollback()

        assert isinstance(first, Ok) and first.value.target.id == b.id
        assert isinstance(second, Ok) and second.value.target.id == a.id
        assert h.state.active_release_id() == a.id

        third = h.rollback.rollback()
        assert isinstance(third, Err)
        assert h.state.active_release_id() == a.id
