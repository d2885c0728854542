"""wrap(): become the crash-watching supervisor, or run as its payload.

Typical embedding::

    def on_crash(text: str) -> None:
        report(text)

    result = crashwrap.wrap(crashwrap.WrapConfig(handler=on_crash))
    if result.error is not None:
        raise SystemExit(f"crashwrap: {result.error}")
    if result.done:
        raise SystemExit(0 if result.capture is not None else result.exit_status)
    main()  # payload: the real program
"""

from __future__ import annotations

import enum
import faulthandler
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from .config import Handler, WrapConfig
from .detector import CrashDetector
from .envtoken import RelaunchToken, active_token, child_environ, register_key
from .errors import ConfigError, SpawnError, WaitError, WrapError
from .forwarder import StreamForwarder
from .journal import Journal
from .status import _mark_payload

UNKNOWN_STATUS = -1


class Role(enum.Enum):
    SUPERVISOR = "supervisor"
    PAYLOAD = "payload"


@dataclass(frozen=True)
class WrapResult:
    role: Optional[Role]
    done: bool
    exit_status: int = UNKNOWN_STATUS
    error: Optional[WrapError] = None
    capture: Optional[str] = None
    signature: Optional[str] = None


def exit_status_from_returncode(rc: int) -> int:
    """Popen returncode -> shell-style status (signal N -> 128 + N)."""

    rc = int(rc)
    if rc < 0:
        return 128 + (-rc)
    return rc


def _binary_stream(stream: Any) -> BinaryIO:
    return getattr(stream, "buffer", stream)


def wrap(config: WrapConfig) -> WrapResult:
    try:
        config.validate()
    except ConfigError as e:
        return WrapResult(role=None, done=False, error=e)

    # Any token this process started with wins, whatever key this config names.
    register_key(config.token_key)
    if active_token() is not None:
        return _become_payload(config)
    return _supervise(config)


def basic_wrap(handler: Handler) -> WrapResult:
    return wrap(WrapConfig(handler=handler))


def _become_payload(config: WrapConfig) -> WrapResult:
    _mark_payload(config)
    if config.enable_faulthandler and not faulthandler.is_enabled():
        try:
            faulthandler.enable(file=sys.__stderr__, all_threads=True)
        except (AttributeError, RuntimeError, ValueError, OSError) as e:
            # No usable stderr fd (pythonw, closed stream).
            Journal(config.log_path).log(f"faulthandler not enabled: {e!r}")
    return WrapResult(role=Role.PAYLOAD, done=False)


class _SignalRelay:
    """Forward/ignore signals for the lifetime of one child."""

    def __init__(self, config: WrapConfig, journal: Journal) -> None:
        self._forward = [int(s) for s in config.forward_signals]
        self._ignore = [int(s) for s in config.ignore_signals if int(s) not in config.forward_signals]
        self._journal = journal
        self._saved: Dict[int, Any] = {}
        self._child: Optional[subprocess.Popen] = None

    def install(self, child: subprocess.Popen) -> None:
        self._child = child
        if threading.current_thread() is not threading.main_thread():
            self._journal.log("not on the main thread; signals are not relayed")
            return
        for sig in self._forward:
            self._swap(sig, self._relay)
        for sig in self._ignore:
            self._swap(sig, signal.SIG_IGN)

    def _swap(self, sig: int, handler: Any) -> None:
        try:
            self._saved[sig] = signal.signal(sig, handler)
        except (OSError, ValueError) as e:
            self._journal.log(f"cannot install handler for signal {sig}: {e!r}")

    def _relay(self, signum: int, frame: Any) -> None:
        child = self._child
        if child is None or child.poll() is not None:
            return
        try:
            child.send_signal(signum)
        except OSError as e:
            self._journal.log(f"relay of signal {signum} failed: {e!r}")

    def restore(self) -> None:
        for sig, prev in self._saved.items():
            signal.signal(sig, prev if prev is not None else signal.SIG_DFL)
        self._saved.clear()


def _supervise(config: WrapConfig) -> WrapResult:
    journal = Journal(config.log_path)
    argv = config.resolved_argv()
    token = RelaunchToken.new(config.token_key)
    detector = CrashDetector(config.signature_bytes(), quiet_period_s=config.quiet_period_s)
    stdout_dest = config.stdout if config.stdout is not None else _binary_stream(sys.stdout)
    stderr_dest = config.stderr if config.stderr is not None else _binary_stream(sys.stderr)

    # Anything the caller already buffered must not land after the child's output.
    for dest in (stdout_dest, stderr_dest):
        try:
            dest.flush()
        except (OSError, ValueError) as e:
            journal.log(f"flush before spawn failed: {e!r}")

    popen_kwargs: Dict[str, Any] = {
        "env": child_environ(token),
        "stdin": None,
        "stdout": subprocess.PIPE,
        "stderr": subprocess.PIPE,
    }
    try:
        child = subprocess.Popen(argv, **popen_kwargs)  # noqa: S603
    except (OSError, ValueError) as e:
        journal.log(f"failed to launch child {argv!r}: {e!r}")
        err = SpawnError(f"cannot start {argv[0]!r}: {e}")
        err.__cause__ = e
        return WrapResult(role=Role.SUPERVISOR, done=False, error=err)

    start_mono = time.monotonic()
    journal.log(f"supervising child pid={child.pid} cmd={argv!r} token={token.call_id}")

    relay = _SignalRelay(config, journal)
    relay.install(child)
    try:
        fwd = StreamForwarder(
            child.stdout,
            child.stderr,
            stdout_dest=stdout_dest,
            stderr_dest=stderr_dest,
            detector=detector,
            mirror_capture=not config.hide_capture,
            journal=journal,
        )
        fwd.start()
        fwd.join()

        wait_error: Optional[WaitError] = None
        try:
            rc = child.wait()
            status = exit_status_from_returncode(rc)
        except (OSError, subprocess.SubprocessError) as e:
            wait_error = WaitError(f"cannot obtain exit status of pid {child.pid}: {e}")
            wait_error.__cause__ = e
            status = UNKNOWN_STATUS
    finally:
        relay.restore()

    dur_s = time.monotonic() - start_mono
    journal.log(
        f"child exit status={status} dur_s={dur_s:.1f} pid={child.pid} "
        f"stdout_bytes={fwd.stdout_bytes} stderr_bytes={fwd.stderr_bytes}"
    )

    error: Optional[WrapError] = wait_error
    if error is None and fwd.errors:
        error = fwd.errors[0]

    text: Optional[str] = None
    sig: Optional[str] = None
    raw = detector.take_capture()
    if raw is not None:
        sig = (detector.signature or b"").decode("utf-8", errors="replace")
        journal.log(f"crash capture confirmed signature={sig!r} length={len(raw)}; calling handler")
        text = raw.decode("utf-8", errors="replace")
        handler = config.handler
        if handler is not None:
            handler(text)

    return WrapResult(role=Role.SUPERVISOR, done=True, exit_status=status, error=error, capture=text, signature=sig)

