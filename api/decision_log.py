# api/decision_log.py
from __future__ import annotations

import hashlib
import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.db_models import DecisionLogRecord
from api.decision_diff import (
    compute_decision_diff,
    snapshot_from_record,
    snapshot_from_result,
)
from api.metrics import DECISION_LOG_ERRORS
from api.schemas import DecisionLogCreate, DecisionSource
from safety_engine import EvaluationInput, PolicyResult
from safety_engine.audit import canonical_json

APPEND_ATTEMPTS = 3

_CHAIN_LOCK = threading.Lock()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(s: str) -> datetime:
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def compute_chain_hash(prev_hash: Optional[str], payload: Dict[str, Any]) -> str:
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return _sha256_hex(f"{prev_hash or ''}:{blob}")


def hash_payload(rec: DecisionLogRecord) -> Dict[str, Any]:
    return {
        "event_id": rec.event_id,
        "timestamp": _iso(rec.timestamp),
        "source": rec.source,
        "trigger": rec.trigger,
        "action_taken": rec.action_taken,
        "rule_impact": rec.rule_impact,
        "deterministic_hash": rec.deterministic_hash,
    }


def verify_chain(db: Session) -> bool:
    """Recompute every link in insertion order."""
    prev_hash: Optional[str] = None
    for rec in db.query(DecisionLogRecord).order_by(DecisionLogRecord.id.asc()):
        if rec.prev_hash != prev_hash:
            return False
        if rec.chain_hash != compute_chain_hash(prev_hash, hash_payload(rec)):
            return False
        prev_hash = rec.chain_hash
    return True


# =============================================================================
# Row content
# =============================================================================


def summarize_trigger(inp: EvaluationInput, result: PolicyResult) -> str:
    triggered = sum(1 for c in result.safety_constraints if c.triggered)
    return (
        f"{inp.hazard_type.value} {inp.phase.value} severity {inp.severity}: "
        f"{triggered} safety constraint(s) triggered"
    )


def summarize_action(result: PolicyResult) -> str:
    if not result.blocked_actions:
        return f"Policy gate {result.policy_gate.value}; no actions blocked"
    blocked = ", ".join(b.action.value for b in result.blocked_actions)
    return f"Policy gate {result.policy_gate.value}; blocked: {blocked}"


def summarize_rule_impact(result: PolicyResult, diff: Optional[Dict[str, Any]]) -> str:
    if diff is not None:
        return str(diff["summary"])
    ids = [c.id for c in result.safety_constraints if c.triggered]
    if not ids:
        return "No safety constraints triggered"
    return "Triggered: " + ", ".join(ids)


# =============================================================================
# Writes
# =============================================================================


def _link(db: Session, record: DecisionLogRecord) -> None:
    last = db.query(DecisionLogRecord).order_by(DecisionLogRecord.id.desc()).first()
    prev_hash = last.chain_hash if last is not None else None
    record.prev_hash = prev_hash
    record.chain_hash = compute_chain_hash(prev_hash, hash_payload(record))
    db.add(record)


def _append(db: Session, record: DecisionLogRecord) -> DecisionLogRecord:
    """
    Link a row to the current tail and insert it.

    Writers in this process take _CHAIN_LOCK. prev_hash is unique, so a writer
    elsewhere that linked to the same tail fails on commit and relinks.
    """
    with _CHAIN_LOCK:
        for attempt in range(1, APPEND_ATTEMPTS):
            _link(db, record)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.bind(event_id=record.event_id, attempt=attempt).warning(
                    "decision log tail moved; relinking"
                )
                continue
            db.refresh(record)
            return record

        _link(db, record)
        db.commit()
        db.refresh(record)
        return record


def append_entry(db: Session, entry: DecisionLogCreate) -> DecisionLogRecord:
    """Append a caller-authored row (operator notes, copilot actions)."""
    record = DecisionLogRecord(
        event_id=entry.event_id,
        timestamp=_utcnow(),
        source=entry.source.value,
        trigger=entry.trigger,
        action_taken=entry.action_taken,
        rule_impact=entry.rule_impact,
        metadata_json=canonical_json(entry.metadata),
    )
    try:
        return _append(db, record)
    except Exception:
        db.rollback()
        DECISION_LOG_ERRORS.inc()
        raise


def record_evaluation(
    db: Session,
    inp: EvaluationInput,
    result: PolicyResult,
) -> Optional[DecisionLogRecord]:
    """
    Best-effort Rule Engine row for one evaluation.

    Returns None when the write failed; the failure is logged and counted
    but never reaches the caller.
    """
    try:
        prev = (
            db.query(DecisionLogRecord)
            .filter(
                DecisionLogRecord.event_id == inp.scenario_id,
                DecisionLogRecord.source == DecisionSource.RULE_ENGINE.value,
            )
            .order_by(DecisionLogRecord.id.desc())
            .first()
        )
        prev_snapshot = snapshot_from_record(prev) if prev is not None else None
        diff = compute_decision_diff(prev_snapshot, snapshot_from_result(result))

        metadata = {
            "engineVersion": result.meta.engine_version,
            "deterministicHash": result.meta.deterministic_hash,
            "policyGate": result.policy_gate.value,
            "triggeredConstraints": [c.id for c in result.safety_constraints if c.triggered],
            "escalationFlags": [f.value for f in result.escalation_flags],
            "decisionDiff": diff,
        }

        record = DecisionLogRecord(
            event_id=inp.scenario_id,
            timestamp=_parse_iso(result.meta.evaluated_at),
            source=DecisionSource.RULE_ENGINE.value,
            trigger=summarize_trigger(inp, result),
            action_taken=summarize_action(result),
            rule_impact=summarize_rule_impact(result, diff),
            policy_gate=result.policy_gate.value,
            engine_version=result.meta.engine_version,
            deterministic_hash=result.meta.deterministic_hash,
            metadata_json=canonical_json(metadata),
            response_json=canonical_json(result),
        )
        return _append(db, record)
    except Exception:
        db.rollback()
        DECISION_LOG_ERRORS.inc()
        logger.bind(scenario_id=inp.scenario_id).exception("failed to persist decision log row")
        return None


__all__ = [
    "append_entry",
    "compute_chain_hash",
    "hash_payload",
    "record_evaluation",
    "summarize_action",
    "summarize_rule_impact",
    "summarize_trigger",
    "verify_chain",
]
