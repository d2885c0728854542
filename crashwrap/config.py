"""WrapConfig + defaults.

A config is compared by identity (``eq=False``): ``wrapped(cfg)`` asks about
this exact object, never about an equal-looking one.
"""

from __future__ import annotations

import os
import signal
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, List, Optional, Sequence, Tuple, Union

from .envtoken import DEFAULT_TOKEN_KEY
from .errors import ConfigError

Handler = Callable[[str], None]
Signature = Union[str, bytes]

# Line prefixes CPython writes when it dies: an uncaught exception, and a
# fatal error reported by faulthandler (segfault, abort, ...).
DEFAULT_SIGNATURES: Tuple[str, ...] = (
    "Traceback (most recent call last):",
    "Fatal Python error: ",
)

LOG_PATH_ENV = "CRASHWRAP_LOG"


def _default_forward_signals() -> Tuple[int, ...]:
    sig = getattr(signal, "SIGTERM", None)
    return (int(sig),) if sig is not None else ()


def _default_ignore_signals() -> Tuple[int, ...]:
    return (int(signal.SIGINT),)


def default_log_path() -> Optional[str]:
    raw = os.environ.get(LOG_PATH_ENV, "").strip()
    return raw or None


@dataclass(frozen=True, eq=False)
class WrapConfig:
    handler: Optional[Handler] = None
    hide_capture: bool = False
    signatures: Sequence[Signature] = DEFAULT_SIGNATURES
    # None: partial matches wait for more bytes indefinitely and a capture
    # is only final at stream end. See crashwrap.detector.
    quiet_period_s: Optional[float] = None
    argv: Optional[Sequence[str]] = None
    stdout: Optional[BinaryIO] = None
    stderr: Optional[BinaryIO] = None
    token_key: str = DEFAULT_TOKEN_KEY
    forward_signals: Sequence[int] = field(default_factory=_default_forward_signals)
    ignore_signals: Sequence[int] = field(default_factory=_default_ignore_signals)
    enable_faulthandler: bool = True
    log_path: Optional[str] = field(default_factory=default_log_path)

    def signature_bytes(self) -> List[bytes]:
        out: List[bytes] = []
        for sig in self.signatures:
            out.append(sig.encode("utf-8") if isinstance(sig, str) else bytes(sig))
        return out

    def validate(self) -> None:
        if self.handler is None:
            raise ConfigError("handler is required")
        if not callable(self.handler):
            raise ConfigError(f"handler must be callable, got {type(self.handler).__name__}")
        if isinstance(self.signatures, (str, bytes)):
            raise ConfigError("signatures must be a sequence of prefixes, not a single string")
        sigs = self.signature_bytes()
        if not sigs:
            raise ConfigError("at least one signature is required")
        if any(len(s) == 0 for s in sigs):
            raise ConfigError("signatures must be non-empty")
        if self.quiet_period_s is not None and float(self.quiet_period_s) <= 0.0:
            raise ConfigError("quiet_period_s must be > 0 (or None)")
        if self.argv is not None and len(list(self.argv)) == 0:
            raise ConfigError("argv override must not be empty")
        if not self.token_key or "=" in self.token_key:
            raise ConfigError(f"invalid token_key: {self.token_key!r}")

    def resolved_argv(self) -> List[str]:
        if self.argv is not None:
            return [str(a) for a in self.argv]
        return own_argv()


def own_argv() -> List[str]:
    """Command line that restarts this interpreter the way it was started.

    ``sys.orig_argv`` keeps interpreter flags and the ``-m``/``-c`` forms that
    ``sys.argv`` loses; its first element is swapped for the resolved
    ``sys.executable``.
    """

    orig = list(getattr(sys, "orig_argv", []) or [])
    if orig:
        return [sys.executable] + orig[1:]
    return [sys.executable] + list(sys.argv)
