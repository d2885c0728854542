"""Scenario program for the end-to-end tests.

Run as ``python helper_process.py <scenario> [args...]``. Most scenarios call
``wrap`` first, so the same command line runs twice: once as the supervisor
(the process the test started) and once as the relaunched payload.

The supervisor side prints ``status: <n>`` after ``wrap`` returns and exits
0 when a crash was captured, else with the child's status.
"""

from __future__ import annotations

import faulthandler
import os
import subprocess
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from crashwrap import DEFAULT_SIGNATURES, WrapConfig, basic_wrap, relaunch_token, wrap, wrapped  # noqa: E402


def _on_crash(text: str) -> None:
    sys.stdout.write(f"wrapped: {len(text)}\n")
    sys.stdout.flush()


def _err(s: str) -> None:
    sys.stderr.write(s)
    sys.stderr.flush()


def _finish_supervisor(result) -> None:
    if result.error is not None:
        _err(f"wrap error: {result.error}\n")
        sys.exit(1)
    sys.stdout.write(f"status: {result.exit_status}\n")
    sys.stdout.flush()
    sys.exit(0 if result.capture is not None else result.exit_status)


def _wrap_or_die(config: WrapConfig):
    result = wrap(config)
    if result.error is not None:
        _err(f"wrap error: {result.error}\n")
        sys.exit(1)
    if result.done:
        _finish_supervisor(result)
    return result


def main(argv) -> None:
    if not argv:
        _err("No command\n")
        sys.exit(2)
    cmd, args = argv[0], argv[1:]

    if cmd == "output":
        _wrap_or_die(WrapConfig(handler=_on_crash))
        sys.stdout.write("i am output")
        _err("stderr out")
        sys.exit(0)

    if cmd == "exit-status":
        _wrap_or_die(WrapConfig(handler=_on_crash))
        _err("ordinary line\n")
        sys.exit(int(args[0]))

    if cmd == "crash":
        _wrap_or_die(WrapConfig(handler=_on_crash, hide_capture=bool(args) and args[0] == "hide"))
        sys.stdout.write("before crash\n")
        sys.stdout.flush()
        raise RuntimeError("uh oh")

    if cmd == "basic":
        result = basic_wrap(_on_crash)
        if result.done:
            _finish_supervisor(result)
        raise KeyError("basic")

    if cmd == "crash-long":
        _wrap_or_die(WrapConfig(handler=_on_crash, signatures=("panic:",) + DEFAULT_SIGNATURES))
        _err("panic: foo\n\n")
        for _ in range(1024):
            sys.stderr.write("foobarbaz")
        sys.stderr.flush()
        time.sleep(0.5)
        raise RuntimeError("I AM REAL!")

    if cmd == "one-byte":
        _wrap_or_die(WrapConfig(handler=_on_crash))
        _err("ordinary\n")
        for ch in "Traceback (most recent call last):\n  fake frame\nValueError: one byte at a time\n":
            _err(ch)
            time.sleep(0.001)
        sys.exit(1)

    if cmd == "boundary":
        quiet = 0.05 if args and args[0] == "impatient" else None
        _wrap_or_die(WrapConfig(handler=_on_crash, signatures=("panic:",), quiet_period_s=quiet))
        _err("pan")
        time.sleep(0.5)
        _err("ic: oh crap\n")
        sys.exit(2)

    if cmd == "fatal":
        _wrap_or_die(WrapConfig(handler=_on_crash))
        faulthandler._sigsegv()
        sys.exit(0)

    if cmd == "wrapped":
        config = WrapConfig(handler=_on_crash)
        result = wrap(config)
        if result.done:
            print(f"supervisor global={wrapped()} config={wrapped(config)}")
            sys.stdout.flush()
            sys.exit(result.exit_status)
        other = WrapConfig(handler=_on_crash)
        tok = relaunch_token()
        parent = tok is not None and tok.supervisor_pid == os.getppid()
        print(f"payload global={wrapped()} config={wrapped(config)} other={wrapped(other)} parent={parent}")
        sys.exit(0)

    if cmd == "double-wrap":
        first = WrapConfig(handler=_on_crash)
        second = WrapConfig(handler=_on_crash)
        _wrap_or_die(first)
        r2 = wrap(second)
        print(f"second role={r2.role.value} done={r2.done} first={wrapped(first)} second={wrapped(second)}")
        sys.exit(0)

    if cmd == "custom-key":
        first = WrapConfig(handler=_on_crash, token_key="MY_APP_CHILD")
        _wrap_or_die(first)
        tok = relaunch_token()
        print(f"custom global={wrapped()} key={tok.key if tok else None}")
        r2 = wrap(WrapConfig(handler=_on_crash))
        print(f"second role={r2.role.value} done={r2.done} global={wrapped()}")
        sys.stdout.flush()
        if r2.done:
            sys.exit(1)
        sys.exit(0)

    if cmd == "recursive":
        fresh = WrapConfig(handler=_on_crash)
        if args and args[0] == "child":
            # Independent process started by a payload: inherits the token,
            # never calls wrap.
            print(f"grandchild global={wrapped()} config={wrapped(fresh)}")
            sys.exit(0)
        _wrap_or_die(WrapConfig(handler=_on_crash))
        sys.stdout.flush()
        rc = subprocess.call([sys.executable, str(Path(__file__).resolve()), "recursive", "child"])
        sys.exit(rc)

    _err(f"Unknown command: {cmd!r}\n")
    sys.exit(2)


if __name__ == "__main__":
    main(sys.argv[1:])
