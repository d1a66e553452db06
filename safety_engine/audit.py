from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from safety_engine.types import EvaluationInput, ResultMeta

# Bump whenever rule semantics change (thresholds, applicability, flags,
# blocked actions, evidence templates). Stored results stay tied to the
# version that produced them.
ENGINE_VERSION = "1.1.0"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _safe_dump(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True)
    return obj


def canonical_json(obj: Any) -> str:
    return json.dumps(
        _safe_dump(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def deterministic_hash(inp: EvaluationInput) -> str:
    """SHA-256 over the canonical normalized input. No wall-clock value goes in."""
    return hashlib.sha256(canonical_json(inp).encode("utf-8")).hexdigest()


def stamp(inp: EvaluationInput, *, clock: Optional[Clock] = None) -> ResultMeta:
    """Build result metadata. This is the only place the engine reads the clock."""
    now = (clock or _utcnow)()
    return ResultMeta(
        deterministic_hash=deterministic_hash(inp),
        evaluated_at=_iso(now),
        engine_version=ENGINE_VERSION,
        scenario_id=inp.scenario_id,
        input_last_updated=inp.last_updated,
    )


__all__ = [
    "ENGINE_VERSION",
    "Clock",
    "canonical_json",
    "deterministic_hash",
    "stamp",
]
