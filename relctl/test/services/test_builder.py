"""Tests for services/builder.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from relctl.core.config import Config, SourceConfig
from relctl.core.layout import DeployLayout
from relctl.core.result import Err, Ok, Result
from relctl.output.console import MockConsole
from relctl.platform.process import ProcessError
from relctl.services import environment
from relctl.services.builder import ReleaseBuilder
from relctl.services.environment import VENV_LINK, EnvironmentCache
from relctl.services.model import ReleaseStatus, ResolvedRevision
from relctl.services.releases import ReleaseStore
from relctl.services.revision import InMemoryRevisionSource
from relctl.services.state import DeployState


def _ok_run(
    cmd: list[str], cwd: Path, env: dict[str, str] | None = None, *, timeout: float | None = None
) -> Result[str, ProcessError]:
    return Ok("")


def _failing_run(
    cmd: list[str], cwd: Path, env: dict[str, str] | None = None, *, timeout: float | None = None
) -> Result[str, ProcessError]:
    return Err(ProcessError(tuple(cmd), 1, "", "resolver conflict\n"))


def _builder(
    tmp_path: Path,
    source: InMemoryRevisionSource,
    config: Config | None = None,
    *,
    min_free_bytes: int = 0,
) -> tuple[ReleaseBuilder, ReleaseStore, DeployLayout]:
    config = config or Config()
    layout = DeployLayout(tmp_path)
    state = DeployState(layout)
    console = MockConsole()
    store = ReleaseStore(layout.releases_dir)
    builder = ReleaseBuilder(
        layout=layout,
        config=config,
        source=source,
        store=store,
        environments=EnvironmentCache(
            envs_dir=layout.envs_dir, state=state, config=config.dependencies, console=console
        ),
        console=console,
        min_free_bytes=min_free_bytes,
    )
    return builder, store, layout


class TestBuild:
    def test_exports_tree_without_dev_artifacts(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(environment, "run_process", _ok_run)
        source = InMemoryRevisionSource()
        sha = source.commit(
            "main",
            "a" * 40,
            {
                "app/views.py": "views",
                "app/__pycache__/views.cpython-312.pyc": "bytecode",
                ".pytest_cache/v/cache": "x",
                "docs/build/index.html": "html",
            },
        )
        config = Config(source=SourceConfig(exclude=("docs/build/*",)))
        builder, store, _ = _builder(tmp_path, source, config)

        result = builder.build(ResolvedRevision(ref="main", sha=sha))

        assert isinstance(result, Ok)
        release = result.value
        assert (release.path / "app" / "views.py").exists()
        assert not (release.path / "app" / "__pycache__").exists()
        assert not (release.path / ".pytest_cache").exists()
        assert not (release.path / "docs" / "build" / "index.html").exists()
        assert release.status is ReleaseStatus.PENDING
        assert store.load(release.id).revision == sha

    def test_attaches_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(environment, "run_process", _ok_run)
        source = InMemoryRevisionSource()
        sha = source.commit("main", "b" * 40, {"app.py": "x", "requirements.txt": "flask\n"})
        builder, store, layout = _builder(tmp_path, source)

        release = builder.build(ResolvedRevision(ref="main", sha=sha)).unwrap()

        assert release is not None
        venv = release.path / VENV_LINK
        assert venv.is_symlink()
        assert venv.resolve().parent == layout.envs_dir.resolve()
        assert store.load(release.id).env_hash == venv.resolve().name

    def test_copies_runtime_files(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(environment, "run_process", _ok_run)
        (tmp_path / "shared" / "config").mkdir(parents=True)
        (tmp_path / "shared" / ".env").write_text("SECRET_KEY=x\n", encoding="utf-8")
        (tmp_path / "shared" / "config" / "local.py").write_text("DEBUG = False\n", encoding="utf-8")
        source = InMemoryRevisionSource()
        sha = source.commit("main", "c" * 40, {"app.py": "x"})
        config = Config(runtime_files=(".env", "config", "missing.ini"))
        builder, _, _ = _builder(tmp_path, source, config)

        release = builder.build(ResolvedRevision(ref="main", sha=sha)).unwrap()

        assert release is not None
        assert (release.path / ".env").read_text(encoding="utf-8") == "SECRET_KEY=x\n"
        assert (release.path / "config" / "local.py").exists()
        assert not (release.path / "missing.ini").exists()

    def test_insufficient_disk_space(self, tmp_path: Path) -> None:
        source = InMemoryRevisionSource()
        sha = source.commit("main", "d" * 40, {"app.py": "x"})
        builder, store, _ = _builder(tmp_path, source, min_free_bytes=1 << 62)

        result = builder.build(ResolvedRevision(ref="main", sha=sha))

        assert isinstance(result, Err)
        assert result.error.kind == "build_error"
        assert "disk space" in result.error.message
        assert result.error.release_id is None
        assert store.ids() == []

    def test_install_failure_keeps_failed_release(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(environment, "run_process", _failing_run)
        source = InMemoryRevisionSource()
        sha = source.commit("main", "e" * 40, {"requirements.txt": "broken\n"})
        builder, store, _ = _builder(tmp_path, source)

        result = builder.build(ResolvedRevision(ref="main", sha=sha))

        assert isinstance(result, Err)
        assert result.error.release_id is not None
        assert store.load(result.error.release_id).status is ReleaseStatus.FAILED

    def test_export_failure(self, tmp_path: Path) -> None:
        builder, store, _ = _builder(tmp_path, InMemoryRevisionSource())

        result = builder.build(ResolvedRevision(ref="main", sha="f" * 40))

        assert isinstance(result, Err)
        assert "cannot export" in result.error.message
        assert [r.status for r in store.releases()] == [ReleaseStatus.FAILED]
