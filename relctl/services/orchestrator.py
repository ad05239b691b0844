"""Top-level deploy and rollback runs.

A deploy is one sequential pass:

    resolve -> build -> preflight -> activate -> reconcile -> retention

Anything failing before ``activate`` aborts the run with the pointer
untouched. ``activate`` is the commit point; reconcile and retention
failures after it are reported, never undone. The orchestrator never rolls
back on its own: the caller decides, using the outcome's exit code.

Every run ends with exactly one ``RunOutcome``, which is sent to the
notifier and appended to the run history.
"""

from __future__ import annotations

from dataclasses import replace

from relctl.core.config import Config
from relctl.core.layout import DeployLayout
from relctl.core.result import Err, Ok, Result
from relctl.git.repository import Repository
from relctl.output.console import ConsoleProtocol, Style

from .activation import ActivationSwitch
from .builder import ReleaseBuilder
from .environment import EnvironmentCache
from .errors import DeployError, RevisionError
from .model import (
    OutcomeStatus,
    ReconcileReport,
    ResolvedRevision,
    RunOutcome,
    isoformat,
    utc_now,
)
from .notify import Notifier, NullNotifier, WebhookNotifier
from .preflight import PreflightValidator
from .reconciler import RestartPlan, ServiceReconciler, plan_restarts
from .releases import ReleaseStore
from .retention import RetentionManager
from .revision import GitRevisionSource, RevisionSource
from .rollback import RollbackController
from .state import DeployState
from .supervisor import Supervisor, SystemdSupervisor

__all__ = ["DeployOrchestrator"]


class DeployOrchestrator:
    def __init__(
        self,
        *,
        config: Config,
        source: RevisionSource,
        state: DeployState,
        store: ReleaseStore,
        builder: ReleaseBuilder,
        validator: PreflightValidator,
        activation: ActivationSwitch,
        reconciler: ServiceReconciler,
        retention: RetentionManager,
        rollback_controller: RollbackController,
        notifier: Notifier,
        console: ConsoleProtocol,
    ) -> None:
        self._config = config
        self._source = source
        self._state = state
        self._store = store
        self._builder = builder
        self._validator = validator
        self._activation = activation
        self._reconciler = reconciler
        self._retention = retention
        self._rollback = rollback_controller
        self._notifier = notifier
        self._console = console

    @classmethod
    def create(
        cls,
        layout: DeployLayout,
        config: Config,
        console: ConsoleProtocol,
        *,
        source: RevisionSource | None = None,
        supervisor: Supervisor | None = None,
        notifier: Notifier | None = None,
        store: ReleaseStore | None = None,
    ) -> DeployOrchestrator:
        """Wire the production components for a deploy root."""
        state = DeployState(layout)
        store = store or ReleaseStore(layout.releases_dir)
        source = source or GitRevisionSource(
            Repository(layout.repo_dir), remote=config.source.remote
        )
        supervisor = supervisor or SystemdSupervisor(config.supervisor.systemctl, cwd=layout.root)
        if notifier is None:
            notifier = (
                WebhookNotifier(config.notify.webhook, console)
                if config.notify.webhook
                else NullNotifier()
            )

        environments = EnvironmentCache(
            envs_dir=layout.envs_dir, state=state, config=config.dependencies, console=console
        )
        activation = ActivationSwitch(state=state, store=store, console=console)
        reconciler = ServiceReconciler(supervisor=supervisor, reload=config.reload, console=console)
        return cls(
            config=config,
            source=source,
            state=state,
            store=store,
            builder=ReleaseBuilder(
                layout=layout,
                config=config,
                source=source,
                store=store,
                environments=environments,
                console=console,
            ),
            validator=PreflightValidator(
                config=config.preflight,
                dependencies=config.dependencies,
                store=store,
                console=console,
            ),
            activation=activation,
            reconciler=reconciler,
            retention=RetentionManager(
                store=store,
                state=state,
                environments=environments,
                console=console,
                keep=config.retention,
            ),
            rollback_controller=RollbackController(
                store=store,
                state=state,
                activation=activation,
                reconciler=reconciler,
                services=config.services,
                console=console,
            ),
            notifier=notifier,
            console=console,
        )

    # -- deploy -------------------------------------------------------------

    def resolve(self, ref: str) -> Result[ResolvedRevision, RevisionError]:
        fetched = self._source.fetch(ref)
        if isinstance(fetched, Err):
            return fetched
        match self._source.resolve(ref):
            case Err(e):
                return Err(e)
            case Ok(sha):
                return Ok(ResolvedRevision(ref=ref, sha=sha))

    def changed_paths(self, revision: ResolvedRevision) -> frozenset[str] | None:
        """Paths changed since the deployed-revision marker; None when unknown."""
        previous = self._state.deployed_revision()
        if previous is None:
            self._console.print("no deployed revision recorded, restarting everything", Style.DIM)
            return None
        if previous == revision.sha:
            return frozenset()
        match self._source.diff(previous, revision.sha):
            case Err(e):
                self._console.warning(f"cannot diff {previous[:12]}..{revision.short}: {e.message}")
                return None
            case Ok(paths):
                return paths

    def plan(self, ref: str) -> Result[tuple[ResolvedRevision, RestartPlan], RevisionError]:
        """Resolve ``ref`` and compute the restart plan, without building anything."""
        resolved = self.resolve(ref)
        if isinstance(resolved, Err):
            return resolved
        revision = resolved.value
        return Ok((revision, plan_restarts(self._config.services, self.changed_paths(revision))))

    def deploy(self, ref: str, *, restart_all: bool = False) -> RunOutcome:
        """Deploy ``ref`` as a new release.

        Args:
            ref: Branch, tag or commit sha.
            restart_all: Restart every service regardless of the diff.

        Returns:
            The run outcome, already sent to the notifier and recorded in the
            history.
        """
        outcome = RunOutcome(
            operation="deploy",
            status=OutcomeStatus.SUCCESS,
            ref=ref,
            previous_release_id=self._state.active_release_id(),
        )
        self._console.header(f"deploy {ref}")

        resolved = self.resolve(ref)
        if isinstance(resolved, Err):
            return self._finish(_abort(outcome, resolved.error))
        revision = resolved.value
        outcome = replace(outcome, revision=revision.sha)
        changed = None if restart_all else self.changed_paths(revision)

        built = self._builder.build(revision)
        if isinstance(built, Err):
            return self._finish(_abort(outcome, built.error, release_id=built.error.release_id))
        release = built.value
        outcome = replace(outcome, release_id=release.id)

        validated = self._validator.validate(release)
        if isinstance(validated, Err):
            return self._finish(_abort(outcome, validated.error))

        activated = self._activation.activate(validated.value)
        if isinstance(activated, Err):
            error = activated.error
            return self._finish(
                replace(
                    outcome,
                    status=OutcomeStatus.ACTIVATION_FAILED,
                    error_kind=error.kind,
                    message=error.message,
                    error=error,
                )
            )

        report = self._reconciler.reconcile(self._config.services, changed)
        self._retention.prune()
        return self._finish(_with_report(outcome, report))

    # -- rollback -----------------------------------------------------------

    def rollback(self) -> RunOutcome:
        """Return to the previous activated release and restart every service."""
        outcome = RunOutcome(
            operation="rollback",
            status=OutcomeStatus.SUCCESS,
            previous_release_id=self._state.active_release_id(),
        )
        self._console.header("rollback")

        match self._rollback.rollback():
            case Err(error):
                status = (
                    OutcomeStatus.ACTIVATION_FAILED
                    if error.kind == "activation_error"
                    else OutcomeStatus.PRECOMMIT_ABORT
                )
                return self._finish(
                    replace(
                        outcome,
                        status=status,
                        error_kind=error.kind,
                        message=error.message,
                        error=error,
                    )
                )
            case Ok(result):
                outcome = replace(
                    outcome,
                    ref=result.target.ref or None,
                    revision=result.target.revision,
                    release_id=result.target.id,
                )
                return self._finish(_with_report(outcome, result.report))

    # -- reporting ----------------------------------------------------------

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        outcome = replace(outcome, finished_at=isoformat(utc_now()))
        self._notifier.notify(outcome)
        try:
            self._state.append_history(outcome.to_dict())
        except OSError as e:
            self._console.warning(f"could not write run history: {e}")
        return outcome


def _abort(
    outcome: RunOutcome, error: DeployError, *, release_id: str | None = None
) -> RunOutcome:
    return replace(
        outcome,
        status=OutcomeStatus.PRECOMMIT_ABORT,
        error_kind=error.kind,
        message=error.message,
        error=error,
        release_id=release_id or outcome.release_id,
    )


def _with_report(outcome: RunOutcome, report: ReconcileReport) -> RunOutcome:
    if report.ok:
        return replace(outcome, restarted=report.restarted)
    failures = report.failures
    return replace(
        outcome,
        status=OutcomeStatus.PARTIAL_FAILURE,
        error_kind=failures[0].kind,
        error=failures[0],
        message="; ".join(f"{f.service}: {f.message}" for f in failures),
        restarted=report.restarted,
        failures=failures,
    )
