"""Relaunch token: the environment entry that marks a monitored child.

The supervisor writes ``<key>=v1:<supervisor pid>:<call id>`` into the child's
environment before spawning it. The child decodes it once, from a snapshot of
``os.environ`` taken when this module is first imported, so later changes to
the environment (by the payload itself, or by libraries it loads) never flip
a process between roles mid-run.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

DEFAULT_TOKEN_KEY = "CRASHWRAP_RELAUNCH_TOKEN"
TOKEN_VERSION = "v1"

# Decoded lazily per key, but always from this import-time snapshot.
_STARTUP_ENVIRON: Dict[str, str] = dict(os.environ)
_decoded: Dict[str, Optional["RelaunchToken"]] = {}
# Every key a wrap call has used in this process. A payload started under a
# custom key must still see that token when a later call uses another key.
_known_keys: List[str] = [DEFAULT_TOKEN_KEY]


@dataclass(frozen=True)
class RelaunchToken:
    key: str
    value: str
    supervisor_pid: Optional[int] = None
    call_id: str = ""

    @classmethod
    def new(cls, key: str = DEFAULT_TOKEN_KEY) -> "RelaunchToken":
        pid = int(os.getpid())
        call_id = uuid.uuid4().hex[:12]
        return cls(key=key, value=f"{TOKEN_VERSION}:{pid}:{call_id}", supervisor_pid=pid, call_id=call_id)

    def to_env(self) -> Tuple[str, str]:
        return self.key, self.value


def decode(environ: Mapping[str, str], key: str = DEFAULT_TOKEN_KEY) -> Optional[RelaunchToken]:
    """Decode the token under ``key``; presence alone makes it a token.

    Values written by other versions (or by hand) are still honored as
    tokens, they just carry no supervisor pid.
    """

    raw = environ.get(key)
    if raw is None:
        return None
    parts = raw.split(":")
    if len(parts) == 3 and parts[0] == TOKEN_VERSION and parts[1].isdigit():
        return RelaunchToken(key=key, value=raw, supervisor_pid=int(parts[1]), call_id=parts[2])
    return RelaunchToken(key=key, value=raw)


def startup_token(key: str = DEFAULT_TOKEN_KEY) -> Optional[RelaunchToken]:
    """Token this interpreter was started with, or None."""

    if key not in _decoded:
        _decoded[key] = decode(_STARTUP_ENVIRON, key)
    return _decoded[key]


def child_environ(token: RelaunchToken, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Current environment plus exactly one token entry."""

    env = dict(os.environ if base is None else base)
    k, v = token.to_env()
    env[k] = v
    return env


def register_key(key: str) -> None:
    if key not in _known_keys:
        _known_keys.append(key)


def active_token() -> Optional[RelaunchToken]:
    """Startup token under any key this process has used, or None."""

    for key in list(_known_keys):
        tok = startup_token(key)
        if tok is not None:
            return tok
    return None
