"""Core domain types and logic."""

from .config import Config, ConfigError, RestartClass, ServiceConfig, load_config
from .errors import ErrorCode
from .layout import DeployLayout, resolve_root
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "Config",
    "ConfigError",
    "RestartClass",
    "ServiceConfig",
    "load_config",
    # errors
    "ErrorCode",
    # layout
    "DeployLayout",
    "resolve_root",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
