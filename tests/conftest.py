from __future__ import annotations

import os
from pathlib import Path

# IMPORTANT: this runs at import time (before api.db is imported by tests)
BASE = Path(os.getenv("PYTEST_TMP_BASE", "/tmp")) / "outagegate_pytest"
STATE = BASE / "state"

STATE.mkdir(parents=True, exist_ok=True)
# fresh schema every session
(STATE / "outagegate.db").unlink(missing_ok=True)

os.environ.setdefault("OG_ENV", "dev")

# Force db to writable location for tests (bypasses /var/lib defaults)
os.environ["OG_STATE_DIR"] = str(STATE)
os.environ["OG_DB_URL"] = f"sqlite:///{(STATE / 'outagegate.db').as_posix()}"

# Tests MUST NOT rely on the user's shell env for auth.
os.environ.pop("OG_API_KEY", None)
os.environ.pop("OG_AUTH_ENABLED", None)
os.environ["OG_DECISION_LOG_ENABLED"] = "1"

import pytest  # noqa: E402

from _harness import build_app_factory  # noqa: E402


@pytest.fixture
def build_app():
    return build_app_factory()
