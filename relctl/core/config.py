"""Typed configuration loading for relctl.toml.

Every key is optional. A missing file yields the defaults, which describe a
Python web application with a gunicorn front door and a task worker plus
scheduler pair managed by systemd.

Command settings accept either a list of arguments or a single string that
is split with shell rules. Arguments may reference ``{release}``, ``{venv}``,
``{python}`` and ``{manifest}``; they are substituted per release.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlsplit

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_float,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_table,
)
from .timeouts import (
    PREFLIGHT_TIMEOUT_SECONDS,
    RELOAD_DRAIN_SECONDS,
    RELOAD_READY_TIMEOUT_SECONDS,
    RELOAD_SETTLE_SECONDS,
)

__all__ = [
    "Config",
    "ConfigError",
    "DependencyConfig",
    "NotifyConfig",
    "PathsConfig",
    "PreflightConfig",
    "ReloadConfig",
    "RestartClass",
    "ServiceConfig",
    "SourceConfig",
    "SupervisorConfig",
    "DEFAULT_RETENTION",
    "DEFAULT_SERVICES",
    "load_config",
    "load_config_or_default",
]

DEFAULT_RETENTION = 5
CONFIG_FILENAME = "relctl.toml"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None

    @property
    def kind(self) -> str:
        return "config_invalid"


class RestartClass(Enum):
    ZERO_DOWNTIME = "zero-downtime"
    HARD_RESTART = "hard-restart"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """One managed long-running service.

    Attributes:
        name: Short name used in output ("web", "worker").
        unit: Supervisor unit name.
        restart: Restart class.
        triggers: Glob patterns; a changed path matching any of them
            requires a restart.
        ignore: Glob patterns that veto a trigger match.
        pidfile: Master pidfile, used as a readiness signal during a graded
            reload (the new master rewrites it once it is up).
    """

    name: str
    unit: str
    restart: RestartClass = RestartClass.HARD_RESTART
    triggers: tuple[str, ...] = ()
    ignore: tuple[str, ...] = ()
    pidfile: Path | None = None


_TASK_PATTERNS = ("tasks.py", "*/tasks.py", "tasks/*", "*/tasks/*")

DEFAULT_SERVICES: tuple[ServiceConfig, ...] = (
    ServiceConfig(
        name="web",
        unit="app-web.service",
        restart=RestartClass.ZERO_DOWNTIME,
        triggers=("*.py", "requirements.txt", "templates/*", "*/templates/*", "static/*"),
        ignore=(*_TASK_PATTERNS, "tests/*", "docs/*"),
    ),
    ServiceConfig(
        name="worker",
        unit="app-worker.service",
        restart=RestartClass.HARD_RESTART,
        triggers=(*_TASK_PATTERNS, "models.py", "*/models.py", "requirements.txt"),
    ),
    ServiceConfig(
        name="scheduler",
        unit="app-scheduler.service",
        restart=RestartClass.HARD_RESTART,
        triggers=(*_TASK_PATTERNS, "models.py", "*/models.py", "requirements.txt"),
    ),
)


@dataclass(frozen=True, slots=True)
class PathsConfig:
    """On-disk layout, relative to the deploy root unless absolute."""

    releases: str = "releases"
    current: str = "current"
    state: str = "state"
    envs: str = "envs"
    repo: str = "repo"
    shared: str = "shared"


@dataclass(frozen=True, slots=True)
class SourceConfig:
    remote: str = "origin"
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DependencyConfig:
    manifest: str = "requirements.txt"
    python: str = "python3"
    create: tuple[str, ...] = ("{python}", "-m", "venv", "{venv}")
    install: tuple[str, ...] = (
        "{venv}/bin/python",
        "-m",
        "pip",
        "install",
        "--disable-pip-version-check",
        "-r",
        "{manifest}",
    )


@dataclass(frozen=True, slots=True)
class PreflightConfig:
    """Non-mutating release checks, run in this order before activation.

    Empty commands are skipped.
    """

    required_files: tuple[str, ...] = ()
    required_env: tuple[str, ...] = ()
    migrate: tuple[str, ...] = ()
    check: tuple[str, ...] = ()
    drift: tuple[str, ...] = ()
    timeout: float = PREFLIGHT_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class ReloadConfig:
    """Graded reload timing.

    With a pidfile the reconciler polls for the new master up to
    ``ready_timeout``; without one it waits a fixed ``settle_seconds``.
    """

    ready_timeout: float = RELOAD_READY_TIMEOUT_SECONDS
    settle_seconds: float = RELOAD_SETTLE_SECONDS
    drain_seconds: float = RELOAD_DRAIN_SECONDS


@dataclass(frozen=True, slots=True)
class SupervisorConfig:
    systemctl: tuple[str, ...] = ("systemctl",)


@dataclass(frozen=True, slots=True)
class NotifyConfig:
    webhook: str | None = None


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    dependencies: DependencyConfig = field(default_factory=DependencyConfig)
    preflight: PreflightConfig = field(default_factory=PreflightConfig)
    reload: ReloadConfig = field(default_factory=ReloadConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    services: tuple[ServiceConfig, ...] = DEFAULT_SERVICES
    runtime_files: tuple[str, ...] = ()
    retention: int = DEFAULT_RETENTION

    def service(self, name: str) -> ServiceConfig | None:
        for svc in self.services:
            if svc.name == name:
                return svc
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from parsed TOML.

        Raises:
            ValueError: a value has the right type but an invalid content
                (unknown restart class, retention below 1, negative
                durations, a webhook that is not http(s)).
        """
        paths: StrDict = get_table(data, "paths") or {}
        source: StrDict = get_table(data, "source") or {}
        deps: StrDict = get_table(data, "dependencies") or {}
        preflight: StrDict = get_table(data, "preflight") or {}
        reload: StrDict = get_table(data, "reload") or {}
        supervisor: StrDict = get_table(data, "supervisor") or {}
        notify: StrDict = get_table(data, "notify") or {}
        runtime: StrDict = get_table(data, "runtime") or {}
        retention_table: StrDict = get_table(data, "retention") or {}

        default_paths = PathsConfig()
        default_deps = DependencyConfig()
        default_reload = ReloadConfig()

        keep = get_int(retention_table, "keep")
        if keep is not None and keep < 1:
            raise ValueError(f"retention.keep must be >= 1, got {keep}")

        return cls(
            paths=PathsConfig(
                releases=get_str(paths, "releases") or default_paths.releases,
                current=get_str(paths, "current") or default_paths.current,
                state=get_str(paths, "state") or default_paths.state,
                envs=get_str(paths, "envs") or default_paths.envs,
                repo=get_str(paths, "repo") or default_paths.repo,
                shared=get_str(paths, "shared") or default_paths.shared,
            ),
            source=SourceConfig(
                remote=get_str(source, "remote") or "origin",
                exclude=tuple(get_str_list(source, "exclude") or ()),
            ),
            dependencies=DependencyConfig(
                manifest=get_str(deps, "manifest") or default_deps.manifest,
                python=get_str(deps, "python") or default_deps.python,
                create=_get_command(deps, "create") or default_deps.create,
                install=_get_command(deps, "install") or default_deps.install,
            ),
            preflight=PreflightConfig(
                required_files=tuple(get_str_list(preflight, "required_files") or ()),
                required_env=tuple(get_str_list(preflight, "required_env") or ()),
                migrate=_get_command(preflight, "migrate") or (),
                check=_get_command(preflight, "check") or (),
                drift=_get_command(preflight, "drift") or (),
                timeout=_get_seconds(
                    preflight, "preflight", "timeout", PREFLIGHT_TIMEOUT_SECONDS
                ),
            ),
            reload=ReloadConfig(
                ready_timeout=_get_seconds(
                    reload, "reload", "ready_timeout", default_reload.ready_timeout
                ),
                settle_seconds=_get_seconds(
                    reload, "reload", "settle_seconds", default_reload.settle_seconds
                ),
                drain_seconds=_get_seconds(
                    reload, "reload", "drain_seconds", default_reload.drain_seconds
                ),
            ),
            supervisor=SupervisorConfig(
                systemctl=_get_command(supervisor, "systemctl") or ("systemctl",),
            ),
            notify=NotifyConfig(webhook=_get_webhook(notify)),
            services=_parse_services(data) or DEFAULT_SERVICES,
            runtime_files=tuple(get_str_list(runtime, "files") or ()),
            retention=keep or DEFAULT_RETENTION,
        )


def _get_seconds(table: Mapping[str, object], section: str, key: str, default: float) -> float:
    value = get_float(table, key)
    if value is None:
        return default
    if value < 0:
        raise ValueError(f"{section}.{key} must be >= 0, got {value:g}")
    return value


def _get_webhook(table: Mapping[str, object]) -> str | None:
    url = get_str(table, "webhook")
    if not url:
        return None
    if urlsplit(url).scheme not in ("http", "https"):
        raise ValueError(f"notify.webhook must be an http(s) URL, got {url!r}")
    return url


def _get_command(table: Mapping[str, object], key: str) -> tuple[str, ...] | None:
    value = table.get(key)
    if isinstance(value, str):
        return tuple(shlex.split(value)) or None
    items = get_str_list(table, key)
    if not items:
        return None
    return tuple(items)


def _parse_services(data: Mapping[str, object]) -> tuple[ServiceConfig, ...] | None:
    raw = get_list(data, "services")
    if raw is None:
        return None

    services: list[ServiceConfig] = []
    seen: set[str] = set()
    for item in raw:
        table = as_str_dict(item)
        if table is None:
            continue
        name = get_str(table, "name")
        if name is None:
            raise ValueError("every [[services]] entry needs a name")
        if name in seen:
            raise ValueError(f"duplicate service name: {name}")
        seen.add(name)

        restart_raw = get_str(table, "restart") or RestartClass.HARD_RESTART.value
        try:
            restart = RestartClass(restart_raw)
        except ValueError:
            raise ValueError(
                f"service {name}: unknown restart class {restart_raw!r} "
                "(expected 'zero-downtime' or 'hard-restart')"
            ) from None

        pidfile = get_str(table, "pidfile")
        services.append(
            ServiceConfig(
                name=name,
                unit=get_str(table, "unit") or f"{name}.service",
                restart=restart,
                triggers=tuple(get_str_list(table, "triggers") or ("*",)),
                ignore=tuple(get_str_list(table, "ignore") or ()),
                pidfile=Path(pidfile) if pidfile else None,
            )
        )
    return tuple(services)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file."""
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Like load_config, but a missing file means defaults."""
    if not path.exists():
        return Ok(Config())
    return load_config(path)
