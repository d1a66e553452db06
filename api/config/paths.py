from __future__ import annotations

import os
from pathlib import Path


def _env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name, default)).resolve()


STATE_DIR: Path = _env_path("OG_STATE_DIR", "/var/lib/outagegate/state")
