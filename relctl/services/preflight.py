"""Preflight validation of a built release.

Checks run in a fixed order and stop at the first failure:

1. required runtime files and environment variables are present
2. pending schema migrations apply cleanly
3. the application self-check passes
4. no model changes are missing a committed migration

Only step 2 changes anything outside the release (the live database).
Migrations applied before a later failure stay applied.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from relctl.core.config import DependencyConfig, PreflightConfig
from relctl.core.result import Err, Ok, Result
from relctl.output.console import ConsoleProtocol, Style
from relctl.platform.process import ProcessError
from relctl.platform.process import run as run_process

from .commands import release_env, render_command
from .environment import VENV_LINK
from .errors import (
    ConfigMissing,
    HealthCheckFailed,
    MigrationError,
    PreflightError,
    UncommittedSchemaDrift,
)
from .model import Release, ReleaseStatus
from .releases import ReleaseStore

__all__ = ["PreflightValidator", "read_dotenv_keys"]


def read_dotenv_keys(path: Path) -> set[str]:
    """Variable names defined in a ``.env`` style file."""
    try:
        text = path.read_text(encoding="utf-8")
    except (FileNotFoundError, UnicodeDecodeError):
        return set()
    keys: set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key = line.split("=", 1)[0].removeprefix("export ").strip()
        if key:
            keys.add(key)
    return keys


class PreflightValidator:
    def __init__(
        self,
        *,
        config: PreflightConfig,
        dependencies: DependencyConfig,
        store: ReleaseStore,
        console: ConsoleProtocol,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._dependencies = dependencies
        self._store = store
        self._console = console
        self._environ = environ

    def validate(self, release: Release) -> Result[Release, PreflightError]:
        """Run all checks and record the outcome in the release metadata."""
        result = self._run_checks(release)
        status = ReleaseStatus.PASSED if isinstance(result, Ok) else ReleaseStatus.FAILED
        try:
            updated = self._store.mark(release, status)
        except OSError as e:
            self._console.warning(f"could not record validation status: {e}")
            updated = release.with_status(status)

        if isinstance(result, Err):
            return result
        self._console.success(f"preflight passed for {release.id}")
        return Ok(updated)

    def _run_checks(self, release: Release) -> Result[None, PreflightError]:
        missing = self.missing_configuration(release)
        if missing:
            return Err(ConfigMissing(release_id=release.id, missing=tuple(missing)))

        steps = (
            ("migrate", self._config.migrate, _as_migration_error),
            ("check", self._config.check, _as_health_error),
            ("drift", self._config.drift, _as_drift_error),
        )
        for name, template, to_error in steps:
            if not template:
                continue
            self._console.print(f"preflight: {name}", Style.DIM)
            result = self._run(release, template)
            if isinstance(result, Err):
                return Err(to_error(release, result.error))
        return Ok(None)

    def missing_configuration(self, release: Release) -> list[str]:
        missing: list[str] = []
        for rel in self._config.required_files:
            if not (release.path / rel).exists():
                missing.append(rel)

        environ = os.environ if self._environ is None else self._environ
        dotenv = read_dotenv_keys(release.path / ".env")
        for name in self._config.required_env:
            if not environ.get(name) and name not in dotenv:
                missing.append(f"${name}")
        return missing

    def _run(self, release: Release, template: tuple[str, ...]) -> Result[str, ProcessError]:
        venv = release.path / VENV_LINK
        values = {
            "release": str(release.path),
            "venv": str(venv),
            "python": str(venv / "bin" / "python")
            if venv.exists()
            else self._dependencies.python,
            "manifest": str(release.path / self._dependencies.manifest),
        }
        base = None if self._environ is None else dict(self._environ)
        return run_process(
            render_command(template, values),
            cwd=release.path,
            env=release_env(release.path, base),
            timeout=self._config.timeout,
        )


def _as_migration_error(release: Release, e: ProcessError) -> PreflightError:
    return MigrationError(
        release_id=release.id,
        message=f"migrations failed: {e.detail}",
        returncode=e.returncode,
    )


def _as_health_error(release: Release, e: ProcessError) -> PreflightError:
    return HealthCheckFailed(
        release_id=release.id,
        message=f"self-check failed: {e.detail}",
        returncode=e.returncode,
    )


def _as_drift_error(release: Release, e: ProcessError) -> PreflightError:
    return UncommittedSchemaDrift(
        release_id=release.id,
        message=f"schema changes without a committed migration: {e.detail}",
    )
