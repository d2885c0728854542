"""Relaunch the current program as a monitored child and capture its crashes."""

from __future__ import annotations

from .config import DEFAULT_SIGNATURES, WrapConfig
from .detector import CrashDetector, DetectorState
from .envtoken import DEFAULT_TOKEN_KEY, RelaunchToken
from .errors import ConfigError, SpawnError, StreamError, WaitError, WrapError
from .orchestrator import Role, WrapResult, basic_wrap, wrap
from .status import relaunch_token, wrapped

__all__ = [
    "DEFAULT_SIGNATURES",
    "DEFAULT_TOKEN_KEY",
    "ConfigError",
    "CrashDetector",
    "DetectorState",
    "RelaunchToken",
    "Role",
    "SpawnError",
    "StreamError",
    "WaitError",
    "WrapConfig",
    "WrapError",
    "WrapResult",
    "basic_wrap",
    "relaunch_token",
    "wrap",
    "wrapped",
]

__version__ = "0.1.0"
