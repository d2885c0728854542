"""sys.path bootstrap so tests import the in-tree package without installing it."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parents[1]
HELPER = Path(__file__).resolve().parent / "helper_process.py"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def clean_env() -> Dict[str, str]:
    """Environment for a fresh top-level process (no inherited relaunch token)."""

    from crashwrap.envtoken import DEFAULT_TOKEN_KEY

    env = dict(os.environ)
    env.pop(DEFAULT_TOKEN_KEY, None)
    env.pop("CRASHWRAP_LOG", None)
    env["PYTHONPATH"] = os.pathsep.join([str(REPO_ROOT)] + [p for p in [env.get("PYTHONPATH", "")] if p])
    return env
