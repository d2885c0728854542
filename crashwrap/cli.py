"""Command-line front end: run any command under crash capture.

Usage:
  crashwrap --capture-path crash.json --hide-capture -- python train.py --seed 1

The command's stdout is forwarded verbatim; its stderr is scanned for crash
signatures. On a capture the report is written to --capture-path (JSON,
atomic) and the exit code is the command's own status unless
--exit-code-on-capture overrides it.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from typing import List, Optional, Sequence

from .config import DEFAULT_SIGNATURES, WrapConfig, default_log_path
from .journal import _utc_iso, atomic_write_json
from .orchestrator import Role, wrap


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="crashwrap")
    p.add_argument(
        "--signature",
        action="append",
        default=None,
        help="Line prefix that starts a crash dump (repeatable). Default: CPython traceback / fatal error headers.",
    )
    p.add_argument("--hide-capture", action="store_true", help="Do not forward captured crash text to stderr.")
    p.add_argument(
        "--quiet-period-s",
        type=float,
        default=0.0,
        help="If >0, give up on a half-seen signature / finalize a capture after this many silent seconds.",
    )
    p.add_argument("--capture-path", default="", help="Write a JSON crash report here when a crash is captured.")
    p.add_argument("--log-path", default="", help="Append-only supervisor journal. Default: $CRASHWRAP_LOG.")
    p.add_argument(
        "--exit-code-on-capture",
        type=int,
        default=-1,
        help="If >=0, exit with this code when a crash was captured (default: the command's own status).",
    )
    p.add_argument("child_cmd", nargs=argparse.REMAINDER, help="Command to run (prefix with --).")
    return p.parse_args(list(argv) if argv is not None else None)


def _crash_report(cmd: List[str], signature: str, text: str) -> dict:
    return {
        "version": 1,
        "created_utc": _utc_iso(),
        "command": list(cmd),
        "signature": signature,
        "length": len(text),
        "text": text,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    cmd = list(args.child_cmd)
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    if not cmd:
        print("[crashwrap] error: missing command. Usage: crashwrap [options] -- <cmd...>", file=sys.stderr)
        return 2

    signatures = tuple(args.signature) if args.signature else DEFAULT_SIGNATURES
    quiet = float(args.quiet_period_s) if float(args.quiet_period_s) > 0.0 else None
    log_path = str(args.log_path).strip() or default_log_path()

    # The report is written from the result, which names the signature the
    # detector actually matched.
    def _on_crash(text: str) -> None:
        return None

    config = WrapConfig(
        handler=_on_crash,
        hide_capture=bool(args.hide_capture),
        signatures=signatures,
        quiet_period_s=quiet,
        argv=cmd,
        log_path=log_path,
    )
    result = wrap(config)
    if result.role is Role.PAYLOAD:
        # Already under a crashwrap supervisor: it does the watching.
        try:
            return int(subprocess.call(cmd))
        except OSError as e:
            print(f"[crashwrap] error: {e}", file=sys.stderr)
            return 2
    if not result.done:
        print(f"[crashwrap] error: {result.error}", file=sys.stderr)
        return 2
    if result.error is not None:
        print(f"[crashwrap] warning: {result.error}", file=sys.stderr)
    if result.capture is not None and str(args.capture_path).strip():
        atomic_write_json(args.capture_path, _crash_report(cmd, result.signature or "", result.capture))
    if result.capture is not None and int(args.exit_code_on_capture) >= 0:
        return int(args.exit_code_on_capture)
    return int(result.exit_status)


if __name__ == "__main__":
    raise SystemExit(main())
