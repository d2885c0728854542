"""Append-only supervisor journal + atomic JSON artifacts.

Every line is ``[<utc iso>] message``. Journal writes are best-effort: a
broken log path never changes what ``wrap`` returns.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

PathLike = Union[str, "os.PathLike[str]"]


def _utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def append_line(path: Optional[PathLike], line: str) -> bool:
    """Append one timestamped line to ``path``; return False if it failed."""

    if path is None:
        return False
    pth = Path(path)
    try:
        _ensure_dir(pth.parent)
        with pth.open("a", encoding="utf-8") as f:
            f.write(f"[{_utc_iso()}] " + line.rstrip("\n") + "\n")
    except OSError:
        return False
    return True


def atomic_write_json(path: PathLike, payload: Dict[str, Any]) -> None:
    pth = Path(path)
    _ensure_dir(pth.parent)
    tmp = pth.with_suffix(pth.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, sort_keys=True, indent=2), encoding="utf-8")
    tmp.replace(pth)


class Journal:
    """Bound ``append_line`` for one wrap call (pid-tagged)."""

    def __init__(self, path: Optional[PathLike]) -> None:
        self.path = Path(path) if path is not None else None
        self._pid = os.getpid()

    def log(self, message: str) -> None:
        append_line(self.path, f"pid={self._pid} {message}")
