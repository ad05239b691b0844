"""Service reconciler: change-driven restarts after a release goes live.

Which services restart is decided from the set of paths changed between the
previously deployed revision and the new one. A service restarts when any
changed path matches one of its trigger globs (and none of its ignore
globs). When the changed set is unknown (first deploy, stale or unreadable
marker, rollback) every service restarts: the bias is towards restarting
too much, never too little.

Zero-downtime services go through the graded reload (gunicorn/unicorn
signal protocol):

    USR2 -> old master    fork a new master + workers on the new code
    wait for readiness    new pid in the pidfile, or a fixed settle delay
    WINCH -> old master   old workers finish in-flight requests and exit
    wait drain_seconds
    TERM -> old master    old master exits

If the new generation never reports ready, the old master is left serving
and the service is reported as failed. If there is no master to signal,
the service is stopped and started instead.

Hard-restart services get a plain supervisor restart.
"""

from __future__ import annotations

import fnmatch
import signal
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from relctl.core.config import ReloadConfig, RestartClass, ServiceConfig
from relctl.core.result import Err, Ok, Result
from relctl.core.timeouts import RELOAD_POLL_INTERVAL_SECONDS
from relctl.output.console import ConsoleProtocol, Style

from .errors import ReconcileError
from .model import ReconcileReport, ServiceAction, ServiceResult
from .supervisor import Supervisor

__all__ = ["RestartPlan", "ServiceReconciler", "plan_restarts", "service_matches"]


def service_matches(service: ServiceConfig, path: str) -> bool:
    if any(fnmatch.fnmatchcase(path, pat) for pat in service.ignore):
        return False
    return any(fnmatch.fnmatchcase(path, pat) for pat in service.triggers)


def _empty_reasons() -> dict[str, str]:
    return {}


@dataclass(frozen=True, slots=True)
class RestartPlan:
    """Services to restart, and the first changed path that triggered each.

    ``full`` is True when the changed set was unknown and everything
    restarts unconditionally.
    """

    restart: tuple[ServiceConfig, ...]
    untouched: tuple[ServiceConfig, ...]
    full: bool = False
    reasons: Mapping[str, str] = field(default_factory=_empty_reasons)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.restart)


def plan_restarts(
    services: Sequence[ServiceConfig], changed: frozenset[str] | None
) -> RestartPlan:
    """Decide which services need a restart.

    Args:
        services: Managed services, in restart order.
        changed: Changed paths, or None when unknown (restart everything).
    """
    if changed is None:
        return RestartPlan(restart=tuple(services), untouched=(), full=True)

    restart: list[ServiceConfig] = []
    untouched: list[ServiceConfig] = []
    reasons: dict[str, str] = {}
    ordered = sorted(changed)
    for svc in services:
        hit = next((p for p in ordered if service_matches(svc, p)), None)
        if hit is None:
            untouched.append(svc)
        else:
            restart.append(svc)
            reasons[svc.name] = hit
    return RestartPlan(restart=tuple(restart), untouched=tuple(untouched), reasons=reasons)


class ServiceReconciler:
    def __init__(
        self,
        *,
        supervisor: Supervisor,
        reload: ReloadConfig,
        console: ConsoleProtocol,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = RELOAD_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._supervisor = supervisor
        self._reload = reload
        self._console = console
        self._sleep = sleep
        self._clock = clock
        self._poll_interval = poll_interval

    def reconcile(
        self, services: Sequence[ServiceConfig], changed: frozenset[str] | None
    ) -> ReconcileReport:
        """Restart what the changed set requires. Never stops at the first failure."""
        plan = plan_restarts(services, changed)
        if plan.full:
            self._console.info("restarting all services")
        elif not plan.restart:
            self._console.info("no service affected by this change")

        results: list[ServiceResult] = []
        for svc in services:
            if svc not in plan.restart:
                self._console.print(f"{svc.name}: unchanged", Style.DIM)
                results.append(ServiceResult(svc.name, ServiceAction.SKIPPED))
                continue

            reason = plan.reasons.get(svc.name)
            if reason:
                self._console.print(f"{svc.name}: restart ({reason} changed)", Style.DIM)

            match self._restart(svc):
                case Ok(action):
                    self._console.success(f"{svc.name}: {action.value}")
                    results.append(ServiceResult(svc.name, action))
                case Err(error):
                    self._console.error(f"{svc.name}: {error.message}")
                    results.append(ServiceResult(svc.name, ServiceAction.FAILED, error))
        return ReconcileReport(tuple(results))

    def _restart(self, svc: ServiceConfig) -> Result[ServiceAction, ReconcileError]:
        if svc.restart is RestartClass.ZERO_DOWNTIME:
            return self.graded_reload(svc)
        return self._hard_restart(svc)

    def graded_reload(self, svc: ServiceConfig) -> Result[ServiceAction, ReconcileError]:
        old_pid = self._supervisor.main_pid(svc.unit)
        if old_pid is None:
            self._console.warning(f"{svc.name}: no running master, falling back to stop/start")
            return self._stop_start(svc)

        sent = self._supervisor.send_signal(svc.unit, old_pid, signal.SIGUSR2)
        if isinstance(sent, Err):
            if self._supervisor.main_pid(svc.unit) is None:
                self._console.warning(f"{svc.name}: master vanished, falling back to stop/start")
                return self._stop_start(svc)
            return Err(ReconcileError(svc.name, f"cannot start new generation: {sent.error}"))

        if not self._wait_for_new_generation(svc, old_pid):
            return Err(
                ReconcileError(
                    svc.name,
                    f"new generation not ready after {self._reload.ready_timeout:g}s; "
                    f"old master {old_pid} left running",
                    hint=f"check the {svc.unit} journal",
                )
            )

        sent = self._supervisor.send_signal(svc.unit, old_pid, signal.SIGWINCH)
        if isinstance(sent, Err):
            return Err(ReconcileError(svc.name, f"cannot drain old workers: {sent.error}"))

        self._sleep(self._reload.drain_seconds)

        sent = self._supervisor.send_signal(svc.unit, old_pid, signal.SIGTERM)
        if isinstance(sent, Err):
            return Err(ReconcileError(svc.name, f"cannot stop old master: {sent.error}"))
        return Ok(ServiceAction.RELOADED)

    def _wait_for_new_generation(self, svc: ServiceConfig, old_pid: int) -> bool:
        if svc.pidfile is None:
            self._sleep(self._reload.settle_seconds)
            return True

        deadline = self._clock() + self._reload.ready_timeout
        while True:
            pid = _read_pid(svc.pidfile)
            if pid is not None and pid != old_pid:
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(self._poll_interval)

    def _hard_restart(self, svc: ServiceConfig) -> Result[ServiceAction, ReconcileError]:
        result = self._supervisor.restart(svc.unit)
        if isinstance(result, Err):
            return Err(ReconcileError(svc.name, f"restart failed: {result.error.message}"))
        return Ok(ServiceAction.RESTARTED)

    def _stop_start(self, svc: ServiceConfig) -> Result[ServiceAction, ReconcileError]:
        stopped = self._supervisor.stop(svc.unit)
        if isinstance(stopped, Err):
            return Err(ReconcileError(svc.name, f"stop failed: {stopped.error.message}"))
        started = self._supervisor.start(svc.unit)
        if isinstance(started, Err):
            return Err(ReconcileError(svc.name, f"start failed: {started.error.message}"))
        return Ok(ServiceAction.RESTARTED)


def _read_pid(pidfile: Path) -> int | None:
    try:
        return int(pidfile.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None
