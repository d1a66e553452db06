from __future__ import annotations

import json
from typing import Any, Dict, List, Optional


def _as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, list):
        return [str(i) for i in x]
    return [str(x)]


def _maybe_load_json(x: Any) -> Any:
    if x is None:
        return None
    if isinstance(x, (dict, list, int, float, bool)):
        return x
    if isinstance(x, str):
        try:
            return json.loads(x)
        except ValueError:
            return x
    return x


def snapshot_from_record(rec: Any) -> Dict[str, Any]:
    """Snapshot of a stored Rule Engine row (DecisionLogRecord)."""
    meta = _maybe_load_json(getattr(rec, "metadata_json", None))
    if not isinstance(meta, dict):
        meta = {}

    return {
        "policy_gate": getattr(rec, "policy_gate", None),
        "triggered_constraints": _as_list(meta.get("triggeredConstraints")),
        "escalation_flags": _as_list(meta.get("escalationFlags")),
        "deterministic_hash": getattr(rec, "deterministic_hash", None),
    }


def snapshot_from_result(result: Any) -> Dict[str, Any]:
    """Snapshot of a freshly evaluated PolicyResult."""
    return {
        "policy_gate": result.policy_gate.value,
        "triggered_constraints": [c.id for c in result.safety_constraints if c.triggered],
        "escalation_flags": [f.value for f in result.escalation_flags],
        "deterministic_hash": result.meta.deterministic_hash,
    }


def compute_decision_diff(prev: Optional[Dict[str, Any]], curr: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Contract:
      - If prev is None/empty => return None
      - Otherwise return:
        {
          "changes": [ ... ],     # list (possibly empty)
          "prev": prev,
          "curr": curr,
          "summary": "..."
        }
    """
    if not prev:
        return None

    changes: list[dict[str, Any]] = []

    prev_gate = prev.get("policy_gate")
    curr_gate = curr.get("policy_gate")
    if prev_gate != curr_gate:
        changes.append({"field": "policy_gate", "from": prev_gate, "to": curr_gate})

    prev_ids = set(_as_list(prev.get("triggered_constraints")))
    curr_ids = set(_as_list(curr.get("triggered_constraints")))
    added = sorted(curr_ids - prev_ids)
    removed = sorted(prev_ids - curr_ids)
    if added or removed:
        changes.append({"field": "triggered_constraints", "added": added, "removed": removed})

    prev_flags = set(_as_list(prev.get("escalation_flags")))
    curr_flags = set(_as_list(curr.get("escalation_flags")))
    flags_added = sorted(curr_flags - prev_flags)
    flags_removed = sorted(prev_flags - curr_flags)
    if flags_added or flags_removed:
        changes.append({"field": "escalation_flags", "added": flags_added, "removed": flags_removed})

    input_changed = prev.get("deterministic_hash") != curr.get("deterministic_hash")
    if input_changed:
        changes.append({"field": "deterministic_hash", "from": prev.get("deterministic_hash"), "to": curr.get("deterministic_hash")})

    parts = []
    if prev_gate != curr_gate:
        parts.append(f"gate {prev_gate}->{curr_gate}")
    if added:
        parts.append("+" + ",".join(added))
    if removed:
        parts.append("-" + ",".join(removed))
    if not parts and input_changed:
        parts.append("input changed, policy unchanged")
    summary = "; ".join(parts) if parts else "no change"

    return {
        "changes": changes,
        "prev": prev,
        "curr": curr,
        "summary": summary,
    }


__all__ = [
    "compute_decision_diff",
    "snapshot_from_record",
    "snapshot_from_result",
]
