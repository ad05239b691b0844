"""Process supervisor access.

This module provides:
- Supervisor: protocol for the verbs the reconciler needs
- SystemdSupervisor: real implementation on top of ``systemctl``
- MockSupervisor: recording implementation for tests
"""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from relctl.core.result import Err, Ok, Result
from relctl.core.timeouts import SUPERVISOR_TIMEOUT_SECONDS
from relctl.platform.process import run as run_process

__all__ = ["MockSupervisor", "Supervisor", "SupervisorError", "SystemdSupervisor"]


@dataclass(frozen=True, slots=True)
class SupervisorError:
    unit: str
    action: str
    message: str

    def __str__(self) -> str:
        return f"{self.action} {self.unit}: {self.message}"


@runtime_checkable
class Supervisor(Protocol):
    def start(self, unit: str) -> Result[None, SupervisorError]: ...

    def stop(self, unit: str) -> Result[None, SupervisorError]: ...

    def restart(self, unit: str) -> Result[None, SupervisorError]: ...

    def reload_or_restart(self, unit: str) -> Result[None, SupervisorError]: ...

    def is_active(self, unit: str) -> bool: ...

    def main_pid(self, unit: str) -> int | None:
        """PID of the unit's main (master) process, None if not running."""
        ...

    def send_signal(self, unit: str, pid: int, sig: signal.Signals) -> Result[None, SupervisorError]: ...


class SystemdSupervisor:
    def __init__(
        self,
        systemctl: tuple[str, ...] = ("systemctl",),
        *,
        cwd: Path | None = None,
        timeout: float = SUPERVISOR_TIMEOUT_SECONDS,
    ) -> None:
        self._systemctl = systemctl
        self._cwd = cwd or Path("/")
        self._timeout = timeout

    def start(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("start", unit)

    def stop(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("stop", unit)

    def restart(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("restart", unit)

    def reload_or_restart(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("reload-or-restart", unit)

    def is_active(self, unit: str) -> bool:
        result = run_process(
            [*self._systemctl, "is-active", "--quiet", unit], cwd=self._cwd, timeout=self._timeout
        )
        return isinstance(result, Ok)

    def main_pid(self, unit: str) -> int | None:
        result = run_process(
            [*self._systemctl, "show", "--property=MainPID", "--value", unit],
            cwd=self._cwd,
            timeout=self._timeout,
        )
        if isinstance(result, Err):
            return None
        try:
            pid = int(result.value.strip())
        except ValueError:
            return None
        return pid or None

    def send_signal(self, unit: str, pid: int, sig: signal.Signals) -> Result[None, SupervisorError]:
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            return Err(SupervisorError(unit, sig.name, f"no process {pid}"))
        except PermissionError:
            return Err(SupervisorError(unit, sig.name, f"not permitted to signal {pid}"))
        return Ok(None)

    def _verb(self, verb: str, unit: str) -> Result[None, SupervisorError]:
        result = run_process([*self._systemctl, verb, unit], cwd=self._cwd, timeout=self._timeout)
        if isinstance(result, Err):
            return Err(SupervisorError(unit, verb, result.error.detail))
        return Ok(None)


def _empty_calls() -> list[tuple[str, ...]]:
    return []


def _empty_pids() -> dict[str, int | None]:
    return {}


def _empty_pidfiles() -> dict[str, Path]:
    return {}


def _empty_units() -> set[str]:
    return set()


@dataclass
class MockSupervisor:
    """Supervisor that records every call.

    Attributes:
        pids: Main PID per unit (missing or None means not running).
        pidfiles: Per unit, a pidfile the mock rewrites with a new master PID
            when the current master receives SIGUSR2 (like gunicorn does).
        failing: Units whose start/stop/restart verbs fail.
        calls: ("restart", unit), ("signal", unit, "SIGUSR2", "100"), ...
    """

    pids: dict[str, int | None] = field(default_factory=_empty_pids)
    pidfiles: dict[str, Path] = field(default_factory=_empty_pidfiles)
    failing: set[str] = field(default_factory=_empty_units)
    calls: list[tuple[str, ...]] = field(default_factory=_empty_calls)

    def start(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("start", unit)

    def stop(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("stop", unit)

    def restart(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("restart", unit)

    def reload_or_restart(self, unit: str) -> Result[None, SupervisorError]:
        return self._verb("reload-or-restart", unit)

    def is_active(self, unit: str) -> bool:
        return self.pids.get(unit) is not None

    def main_pid(self, unit: str) -> int | None:
        return self.pids.get(unit)

    def send_signal(self, unit: str, pid: int, sig: signal.Signals) -> Result[None, SupervisorError]:
        self.calls.append(("signal", unit, sig.name, str(pid)))
        if unit in self.failing:
            return Err(SupervisorError(unit, sig.name, "signal failed"))
        if sig is signal.SIGUSR2 and unit in self.pidfiles:
            self.pidfiles[unit].write_text(f"{pid + 1000}\n", encoding="utf-8")
        return Ok(None)

    def _verb(self, verb: str, unit: str) -> Result[None, SupervisorError]:
        self.calls.append((verb, unit))
        if unit in self.failing:
            return Err(SupervisorError(unit, verb, "unit failed"))
        return Ok(None)

    def units_touched(self) -> set[str]:
        return {call[1] for call in self.calls}
