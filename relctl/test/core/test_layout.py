"""Tests for relctl.core.layout module."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from relctl.core.config import PathsConfig
from relctl.core.layout import ROOT_ENV_VAR, DeployLayout, resolve_root


class TestDeployLayout:
    def test_default_paths(self, tmp_path: Path) -> None:
        layout = DeployLayout(tmp_path)
        assert layout.config_path == tmp_path / "relctl.toml"
        assert layout.repo_dir == tmp_path / "repo"
        assert layout.releases_dir == tmp_path / "releases"
        assert layout.current_link == tmp_path / "current"
        assert layout.envs_dir == tmp_path / "envs"
        assert layout.shared_dir == tmp_path / "shared"
        assert layout.revision_marker == tmp_path / "state" / "REVISION"
        assert layout.manifest_hash_marker == tmp_path / "state" / "MANIFEST_HASH"
        assert layout.history_path == tmp_path / "state" / "history.jsonl"
        assert layout.release_dir("20260101T000000000000Z") == (
            tmp_path / "releases" / "20260101T000000000000Z"
        )

    def test_absolute_paths_are_kept(self, tmp_path: Path) -> None:
        elsewhere = tmp_path / "elsewhere"
        layout = DeployLayout(tmp_path / "root", PathsConfig(releases=str(elsewhere)))
        assert layout.releases_dir == elsewhere
        assert layout.state_dir == tmp_path / "root" / "state"


class TestResolveRoot:
    def test_explicit_wins(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {ROOT_ENV_VAR: "/nonexistent"}):
            assert resolve_root(tmp_path) == tmp_path.resolve()

    def test_env_var(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {ROOT_ENV_VAR: str(tmp_path)}):
            assert resolve_root() == tmp_path.resolve()

    def test_cwd_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(ROOT_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        assert resolve_root() == tmp_path.resolve()
