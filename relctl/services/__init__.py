"""Deployment services: build, validate, activate, reconcile, prune, roll back."""

from relctl.services.errors import (
    ActivationError,
    BuildError,
    ConfigMissing,
    HealthCheckFailed,
    InsufficientHistory,
    MigrationError,
    ReconcileError,
    RevisionError,
    UncommittedSchemaDrift,
)
from relctl.services.model import OutcomeStatus, Release, ReleaseStatus, RunOutcome
from relctl.services.orchestrator import DeployOrchestrator

__all__ = [
    "ActivationError",
    "BuildError",
    "ConfigMissing",
    "DeployOrchestrator",
    "HealthCheckFailed",
    "InsufficientHistory",
    "MigrationError",
    "OutcomeStatus",
    "ReconcileError",
    "Release",
    "ReleaseStatus",
    "RevisionError",
    "RunOutcome",
    "UncommittedSchemaDrift",
]
