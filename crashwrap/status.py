"""Am I a wrapped payload?

``wrapped()`` is the coarse, inherited answer: this interpreter started with
a relaunch token, under the default key or any key passed to ``wrap``.
``wrapped(cfg)`` is call-local: ``wrap(cfg)`` ran in this process, with this
exact object, and took the payload branch. A process
that merely inherited a token (for example one spawned directly by a
payload) is not wrapped with respect to a config it never passed to
``wrap``.
"""

from __future__ import annotations

import threading
import weakref
from typing import Optional

from .config import WrapConfig
from .envtoken import RelaunchToken, active_token, startup_token

_payload_configs: "weakref.WeakSet[WrapConfig]" = weakref.WeakSet()
_lock = threading.Lock()


def _mark_payload(config: WrapConfig) -> None:
    with _lock:
        _payload_configs.add(config)


def wrapped(config: Optional[WrapConfig] = None) -> bool:
    if config is None:
        return active_token() is not None
    with _lock:
        return config in _payload_configs


def relaunch_token(key: Optional[str] = None) -> Optional[RelaunchToken]:
    """The token this interpreter started with (carries the supervisor pid).

    With no ``key``, looks under every key a ``wrap`` call has used here.
    """

    if key is None:
        return active_token()
    return startup_token(key)
