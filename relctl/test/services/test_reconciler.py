"""Tests for services/reconciler.py."""

from __future__ import annotations

from pathlib import Path

from relctl.core.config import DEFAULT_SERVICES, ReloadConfig, RestartClass, ServiceConfig
from relctl.output.console import MockConsole
from relctl.services.model import ServiceAction
from relctl.services.reconciler import ServiceReconciler, plan_restarts, service_matches
from relctl.services.supervisor import MockSupervisor

WEB = ServiceConfig(
    name="web",
    unit="web.service",
    restart=RestartClass.ZERO_DOWNTIME,
    triggers=("*.py",),
    ignore=("tasks/*",),
)
WORKER = ServiceConfig(name="worker", unit="worker.service", triggers=("tasks/*",))


class FakeTime:
    """Deterministic clock; sleeping advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _reconciler(
    supervisor: MockSupervisor, fake: FakeTime, reload: ReloadConfig | None = None
) -> tuple[ServiceReconciler, MockConsole]:
    console = MockConsole()
    reconciler = ServiceReconciler(
        supervisor=supervisor,
        reload=reload or ReloadConfig(ready_timeout=3, settle_seconds=1, drain_seconds=2),
        console=console,
        sleep=fake.sleep,
        clock=fake.clock,
        poll_interval=0.5,
    )
    return reconciler, console


class TestPlan:
    def test_ignore_vetoes_trigger(self) -> None:
        assert service_matches(WEB, "app/views.py")
        assert not service_matches(WEB, "tasks/email.py")
        assert not service_matches(WEB, "README.md")

    def test_unknown_changes_restart_everything(self) -> None:
        plan = plan_restarts((WEB, WORKER), None)
        assert plan.full
        assert plan.names == ("web", "worker")

    def test_reasons(self) -> None:
        plan = plan_restarts((WEB, WORKER), frozenset({"tasks/email.py", "docs/x.md"}))
        assert plan.names == ("worker",)
        assert plan.reasons == {"worker": "tasks/email.py"}
        assert [s.name for s in plan.untouched] == ["web"]

    def test_default_services(self) -> None:
        docs_only = plan_restarts(DEFAULT_SERVICES, frozenset({"docs/index.md", "README.md"}))
        assert docs_only.names == ()

        task_change = plan_restarts(DEFAULT_SERVICES, frozenset({"shop/tasks.py"}))
        assert task_change.names == ("worker", "scheduler")

        view_change = plan_restarts(DEFAULT_SERVICES, frozenset({"shop/views.py"}))
        assert view_change.names == ("web",)

        deps = plan_restarts(DEFAULT_SERVICES, frozenset({"requirements.txt"}))
        assert deps.names == ("web", "worker", "scheduler")


class TestReconcile:
    def test_empty_change_set_restarts_nothing(self) -> None:
        supervisor = MockSupervisor(pids={"web.service": 100})
        reconciler, _ = _reconciler(supervisor, FakeTime())

        report = reconciler.reconcile((WEB, WORKER), frozenset())

        assert supervisor.calls == []
        assert report.restarted == ()
        assert [r.action for r in report.results] == [ServiceAction.SKIPPED] * 2

    def test_hard_restart(self) -> None:
        supervisor = MockSupervisor()
        reconciler, _ = _reconciler(supervisor, FakeTime())

        report = reconciler.reconcile((WEB, WORKER), frozenset({"tasks/a.py"}))

        assert supervisor.calls == [("restart", "worker.service")]
        assert report.restarted == ("worker",)
        assert report.ok

    def test_graded_reload_signal_order(self) -> None:
        supervisor = MockSupervisor(pids={"web.service": 100})
        fake = FakeTime()
        reconciler, _ = _reconciler(supervisor, fake)

        report = reconciler.reconcile((WEB,), frozenset({"app.py"}))

        assert supervisor.calls == [
            ("signal", "web.service", "SIGUSR2", "100"),
            ("signal", "web.service", "SIGWINCH", "100"),
            ("signal", "web.service", "SIGTERM", "100"),
        ]
        # settle without a pidfile, then drain
        assert fake.sleeps == [1, 2]
        assert report.results[0].action is ServiceAction.RELOADED

    def test_graded_reload_waits_for_pidfile(self, tmp_path: Path) -> None:
        pidfile = tmp_path / "web.pid"
        pidfile.write_text("100\n", encoding="utf-8")
        web = ServiceConfig(
            name="web",
            unit="web.service",
            restart=RestartClass.ZERO_DOWNTIME,
            triggers=("*",),
            pidfile=pidfile,
        )
        supervisor = MockSupervisor(pids={"web.service": 100}, pidfiles={"web.service": pidfile})
        fake = FakeTime()
        reconciler, _ = _reconciler(supervisor, fake)

        report = reconciler.reconcile((web,), None)

        assert report.ok
        assert pidfile.read_text(encoding="utf-8").strip() == "1100"
        assert [c[2] for c in supervisor.calls] == ["SIGUSR2", "SIGWINCH", "SIGTERM"]

    def test_graded_reload_times_out_and_keeps_old_master(self, tmp_path: Path) -> None:
        pidfile = tmp_path / "web.pid"
        pidfile.write_text("100\n", encoding="utf-8")
        web = ServiceConfig(
            name="web",
            unit="web.service",
            restart=RestartClass.ZERO_DOWNTIME,
            triggers=("*",),
            pidfile=pidfile,
        )
        # No pidfile registered with the mock: the new master never shows up
        supervisor = MockSupervisor(pids={"web.service": 100})
        fake = FakeTime()
        reconciler, _ = _reconciler(supervisor, fake)

        report = reconciler.reconcile((web,), None)

        assert not report.ok
        assert "not ready after 3s" in report.failures[0].message
        assert [c[2] for c in supervisor.calls] == ["SIGUSR2"]
        assert fake.now >= 3

    def test_no_master_falls_back_to_stop_start(self) -> None:
        supervisor = MockSupervisor()
        reconciler, console = _reconciler(supervisor, FakeTime())

        report = reconciler.reconcile((WEB,), frozenset({"app.py"}))

        assert supervisor.calls == [("stop", "web.service"), ("start", "web.service")]
        assert report.results[0].action is ServiceAction.RESTARTED
        assert console.has_warning()

    def test_failure_does_not_stop_other_services(self) -> None:
        other = ServiceConfig(name="beat", unit="beat.service", triggers=("tasks/*",))
        supervisor = MockSupervisor(failing={"worker.service"})
        reconciler, console = _reconciler(supervisor, FakeTime())

        report = reconciler.reconcile((WORKER, other), frozenset({"tasks/a.py"}))

        assert supervisor.calls == [("restart", "worker.service"), ("restart", "beat.service")]
        assert report.restarted == ("beat",)
        assert [f.service for f in report.failures] == ["worker"]
        assert console.has_error()
