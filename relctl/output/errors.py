"""Outcome and error presentation.

Centralized formatting of run outcomes so deploy and rollback report the
same way.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relctl.output.console import Style
from relctl.services.errors import (
    ActivationError,
    BuildError,
    ConfigMissing,
    DeployError,
    HealthCheckFailed,
    InsufficientHistory,
    MigrationError,
    ReconcileError,
    RevisionError,
    UncommittedSchemaDrift,
)
from relctl.services.model import OutcomeStatus, RunOutcome

if TYPE_CHECKING:
    from relctl.output.console import ConsoleProtocol

__all__ = ["print_error", "print_outcome"]


def print_error(error: DeployError, console: ConsoleProtocol) -> None:
    match error:
        case RevisionError(ref=ref, message=message):
            console.error(f"cannot resolve {ref}: {message}")
        case BuildError(message=message, release_id=release_id):
            where = f" (release {release_id} kept for inspection)" if release_id else ""
            console.error(f"build failed: {message}{where}")
        case ConfigMissing(missing=missing):
            console.error("missing runtime configuration:")
            for item in missing:
                console.print(f"  {item}", Style.DIM)
        case MigrationError() | HealthCheckFailed() | UncommittedSchemaDrift():
            console.error(error.message)
        case ActivationError(message=message):
            console.error(f"ACTIVATION FAILED: {message}")
        case ReconcileError(service=service, message=message):
            console.error(f"{service}: {message}")
        case InsufficientHistory():
            console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def print_outcome(outcome: RunOutcome, console: ConsoleProtocol) -> None:
    """Final summary line(s) of a run."""
    console.newline()
    match outcome.status:
        case OutcomeStatus.SUCCESS:
            restarted = ", ".join(outcome.restarted) or "none"
            console.success(f"{outcome.operation} complete: {outcome.release_id}")
            console.print(f"restarted: {restarted}", Style.DIM)
        case OutcomeStatus.PARTIAL_FAILURE:
            console.warning(
                f"{outcome.release_id} is live but {len(outcome.failures)} service(s) failed"
            )
            for failure in outcome.failures:
                console.print(f"  {failure.service}: {failure.message}", Style.DIM)
            console.print("hint: retry, or run `relctl rollback`", Style.DIM)
        case OutcomeStatus.ACTIVATION_FAILED:
            console.error(f"{outcome.operation} not committed: {outcome.message}")
        case OutcomeStatus.PRECOMMIT_ABORT:
            console.error(
                f"{outcome.operation} aborted ({outcome.error_kind}); live release unchanged"
            )
