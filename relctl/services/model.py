"""Domain records shared by the deployment services."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from relctl.core.errors import ErrorCode
from relctl.core.structured import StrDict, get_str

from .errors import DeployError, ReconcileError


def utc_now() -> datetime:
    return datetime.now(UTC)


def isoformat(ts: datetime) -> str:
    return ts.astimezone(UTC).isoformat(timespec="seconds")


class ReleaseStatus(Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Release:
    """A release directory and its metadata.

    Attributes:
        id: Sortable UTC timestamp, also the directory name.
        path: Release directory.
        revision: Source commit sha the tree was exported from.
        ref: Ref the operator asked for (branch, tag or sha).
        created_at: ISO timestamp.
        status: Preflight validation status.
        activated_at: Set once the pointer has referenced this release.
        rolled_back_at: Set when a rollback moved the pointer away from it.
        env_hash: Dependency manifest hash of the attached environment.
    """

    id: str
    path: Path
    revision: str
    ref: str
    created_at: str
    status: ReleaseStatus = ReleaseStatus.PENDING
    activated_at: str | None = None
    rolled_back_at: str | None = None
    env_hash: str | None = None

    @property
    def activated(self) -> bool:
        return self.activated_at is not None

    @property
    def rollback_candidate(self) -> bool:
        """True if the release once went live and was not abandoned by a rollback."""
        return self.activated and self.rolled_back_at is None

    def with_status(self, status: ReleaseStatus) -> Release:
        return replace(self, status=status)

    def to_dict(self) -> StrDict:
        return {
            "id": self.id,
            "revision": self.revision,
            "ref": self.ref,
            "created_at": self.created_at,
            "status": self.status.value,
            "activated_at": self.activated_at,
            "rolled_back_at": self.rolled_back_at,
            "env_hash": self.env_hash,
        }

    @classmethod
    def from_dict(cls, path: Path, data: StrDict) -> Release:
        try:
            status = ReleaseStatus(get_str(data, "status") or "pending")
        except ValueError:
            status = ReleaseStatus.FAILED
        return cls(
            id=path.name,
            path=path,
            revision=get_str(data, "revision") or "",
            ref=get_str(data, "ref") or "",
            created_at=get_str(data, "created_at") or "",
            status=status,
            activated_at=get_str(data, "activated_at"),
            rolled_back_at=get_str(data, "rolled_back_at"),
            env_hash=get_str(data, "env_hash"),
        )


@dataclass(frozen=True, slots=True)
class ResolvedRevision:
    ref: str
    sha: str

    @property
    def short(self) -> str:
        return self.sha[:12]


class ServiceAction(Enum):
    SKIPPED = "skipped"
    RELOADED = "reloaded"
    RESTARTED = "restarted"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ServiceResult:
    service: str
    action: ServiceAction
    error: ReconcileError | None = None


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    results: tuple[ServiceResult, ...] = ()

    @property
    def restarted(self) -> tuple[str, ...]:
        return tuple(
            r.service
            for r in self.results
            if r.action in (ServiceAction.RELOADED, ServiceAction.RESTARTED)
        )

    @property
    def failures(self) -> tuple[ReconcileError, ...]:
        return tuple(r.error for r in self.results if r.error is not None)

    @property
    def ok(self) -> bool:
        return not self.failures


class OutcomeStatus(Enum):
    SUCCESS = "success"
    PRECOMMIT_ABORT = "precommit_abort"
    ACTIVATION_FAILED = "activation_failed"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """Single structured result of a deploy or rollback run."""

    operation: str
    status: OutcomeStatus
    ref: str | None = None
    revision: str | None = None
    release_id: str | None = None
    previous_release_id: str | None = None
    error_kind: str | None = None
    message: str | None = None
    restarted: tuple[str, ...] = ()
    failures: tuple[ReconcileError, ...] = ()
    error: DeployError | None = field(default=None, compare=False)
    started_at: str = field(default_factory=lambda: isoformat(utc_now()))
    finished_at: str | None = None

    @property
    def committed(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.PARTIAL_FAILURE)

    @property
    def exit_code(self) -> ErrorCode:
        match self.status:
            case OutcomeStatus.SUCCESS:
                return ErrorCode.OK
            case OutcomeStatus.PARTIAL_FAILURE:
                return ErrorCode.PARTIAL_FAILURE
            case OutcomeStatus.ACTIVATION_FAILED:
                return ErrorCode.ACTIVATION_FAILED
            case OutcomeStatus.PRECOMMIT_ABORT:
                if self.error_kind == "insufficient_history":
                    return ErrorCode.NO_HISTORY
                return ErrorCode.PRECOMMIT_ABORT

    def to_dict(self) -> StrDict:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "ref": self.ref,
            "revision": self.revision,
            "release": self.release_id,
            "previous_release": self.previous_release_id,
            "error_kind": self.error_kind,
            "message": self.message,
            "restarted": list(self.restarted),
            "failures": [{"service": f.service, "message": f.message} for f in self.failures],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "exit_code": int(self.exit_code),
        }
