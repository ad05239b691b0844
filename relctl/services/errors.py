"""Deployment error taxonomy.

Errors are values, returned inside ``Err``. Each carries a stable ``kind``
string that ends up in the structured run outcome and in notifications.

Pre-commit errors (everything up to and including preflight) are safe to
retry: the active-release pointer has not been touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True, slots=True)
class RevisionError:
    """The requested ref could not be fetched or resolved."""

    ref: str
    message: str
    hint: str | None = None
    kind: ClassVar[str] = "revision_error"


@dataclass(frozen=True, slots=True)
class BuildError:
    """Export, disk-space or dependency-install failure."""

    message: str
    release_id: str | None = None
    hint: str | None = None
    kind: ClassVar[str] = "build_error"


@dataclass(frozen=True, slots=True)
class ConfigMissing:
    release_id: str
    missing: tuple[str, ...]
    hint: str | None = "Add the files to the shared/ directory or export the variables"
    kind: ClassVar[str] = "config_missing"

    @property
    def message(self) -> str:
        return f"required runtime configuration missing: {', '.join(self.missing)}"


@dataclass(frozen=True, slots=True)
class MigrationError:
    release_id: str
    message: str
    returncode: int = 1
    hint: str | None = "Migrations applied before the failure are not rolled back"
    kind: ClassVar[str] = "migration_error"


@dataclass(frozen=True, slots=True)
class HealthCheckFailed:
    release_id: str
    message: str
    returncode: int = 1
    hint: str | None = None
    kind: ClassVar[str] = "health_check_failed"


@dataclass(frozen=True, slots=True)
class UncommittedSchemaDrift:
    release_id: str
    message: str
    hint: str | None = "Generate and commit the missing migrations, then redeploy"
    kind: ClassVar[str] = "uncommitted_schema_drift"


@dataclass(frozen=True, slots=True)
class ActivationError:
    """The active-release pointer could not be swapped. Always fatal."""

    release_id: str
    message: str
    hint: str | None = "The previous release is still live; check permissions on the deploy root"
    kind: ClassVar[str] = "activation_error"


@dataclass(frozen=True, slots=True)
class ReconcileError:
    """A single service failed to restart after commit."""

    service: str
    message: str
    hint: str | None = None
    kind: ClassVar[str] = "reconcile_error"


@dataclass(frozen=True, slots=True)
class InsufficientHistory:
    available: int
    hint: str | None = None
    kind: ClassVar[str] = "insufficient_history"

    @property
    def message(self) -> str:
        return f"no previous release to roll back to ({self.available} activated release(s) on disk)"


PreflightError = ConfigMissing | MigrationError | HealthCheckFailed | UncommittedSchemaDrift

PrecommitError = RevisionError | BuildError | PreflightError

DeployError = PrecommitError | ActivationError | ReconcileError | InsufficientHistory
