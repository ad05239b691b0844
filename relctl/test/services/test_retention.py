"""Tests for services/retention.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from relctl.core.config import DependencyConfig
from relctl.core.layout import DeployLayout
from relctl.output.console import MockConsole
from relctl.services.environment import VENV_LINK, EnvironmentCache
from relctl.services.model import Release
from relctl.services.releases import ReleaseStore
from relctl.services.retention import RetentionManager
from relctl.services.state import DeployState


def _ids(count: int) -> list[str]:
    """T1..Tn, oldest first."""
    return [f"2026010{n}T000000000000Z" for n in range(1, count + 1)]


def _make_releases(layout: DeployLayout, ids: list[str]) -> ReleaseStore:
    store = ReleaseStore(layout.releases_dir)
    for release_id in ids:
        path = layout.release_dir(release_id)
        path.mkdir(parents=True)
        store.save(
            Release(id=release_id, path=path, revision=release_id, ref="main", created_at="")
        )
    return store


def _manager(
    layout: DeployLayout, store: ReleaseStore, keep: int, console: MockConsole | None = None
) -> RetentionManager:
    state = DeployState(layout)
    console = console or MockConsole()
    return RetentionManager(
        store=store,
        state=state,
        environments=EnvironmentCache(
            envs_dir=layout.envs_dir, state=state, config=DependencyConfig(), console=console
        ),
        console=console,
        keep=keep,
    )


class TestRetention:
    def test_keeps_newest_five(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        t = _ids(8)
        store = _make_releases(layout, t)
        DeployState(layout).point_to(store.load(t[7]))

        report = _manager(layout, store, keep=5).prune()

        assert set(report.deleted) == {t[0], t[1], t[2]}
        assert store.ids() == list(reversed(t[3:]))

    def test_active_release_survives_outside_window(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        t = _ids(8)
        store = _make_releases(layout, t)
        DeployState(layout).point_to(store.load(t[1]))

        report = _manager(layout, store, keep=5).prune()

        assert set(report.deleted) == {t[0], t[2]}
        assert t[1] in store.ids()
        assert DeployState(layout).active_release_id() == t[1]

    def test_nothing_to_prune(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        store = _make_releases(layout, _ids(3))
        manager = _manager(layout, store, keep=5)
        assert manager.candidates() == []
        assert manager.prune().deleted == ()

    def test_keep_must_be_positive(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        with pytest.raises(ValueError):
            _manager(layout, ReleaseStore(layout.releases_dir), keep=0)

    def test_delete_failure_is_reported_and_skipped(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import relctl.services.retention as retention

        layout = DeployLayout(tmp_path)
        t = _ids(4)
        store = _make_releases(layout, t)
        real_remove = retention.remove_tree

        def flaky_remove(path: Path) -> None:
            if path.name == t[0]:
                raise PermissionError("read-only")
            real_remove(path)

        monkeypatch.setattr(retention, "remove_tree", flaky_remove)
        console = MockConsole()

        report = _manager(layout, store, keep=2, console=console).prune()

        assert report.deleted == (t[1],)
        assert [rid for rid, _ in report.failed] == [t[0]]
        assert console.has_warning()

    def test_unreferenced_environments_are_evicted(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        t = _ids(3)
        store = _make_releases(layout, t)
        old_env = layout.envs_dir / "aaaa"
        live_env = layout.envs_dir / "bbbb"
        old_env.mkdir(parents=True)
        live_env.mkdir(parents=True)
        (layout.release_dir(t[0]) / VENV_LINK).symlink_to(old_env)
        (layout.release_dir(t[2]) / VENV_LINK).symlink_to(live_env)

        report = _manager(layout, store, keep=2).prune()

        assert report.deleted == (t[0],)
        assert report.environments_removed == ("aaaa",)
        assert not old_env.exists()
        assert live_env.exists()
