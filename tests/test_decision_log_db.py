import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy.exc import IntegrityError

import api.decision_log as decision_log
from api.db import get_db
from api.db_models import DecisionLogRecord
from api.decision_log import append_entry, compute_chain_hash, record_evaluation, verify_chain
from api.schemas import DecisionLogCreate, DecisionSource
from safety_engine import evaluate_policy, normalize_scenario


def _event_id() -> str:
    return f"evt-{uuid.uuid4().hex[:12]}"


def _storm(event_id: str, phase: str) -> dict:
    return {
        "scenarioId": event_id,
        "hazardType": "STORM",
        "phase": phase,
        "severity": 3,
        "customersAffected": 900,
        "crews": {"available": 6, "enRoute": 0},
    }


def test_evaluations_are_logged_with_diff(build_app):
    app = build_app(auth_enabled=False)
    event_id = _event_id()

    with TestClient(app) as client:
        r1 = client.post("/evaluate", json=_storm(event_id, "PRE_EVENT"))
        r2 = client.post("/evaluate", json=_storm(event_id, "ACTIVE"))
        assert r1.status_code == 200 and r2.status_code == 200

        listing = client.get("/decisions", params={"event_id": event_id})
        assert listing.status_code == 200
        page = listing.json()

    assert page["total"] == 2
    newest, oldest = page["items"]
    assert newest["source"] == "Rule Engine"
    assert newest["policy_gate"] == "BLOCK"
    assert oldest["policy_gate"] == "PASS"
    assert oldest["rule_impact"] == "No safety constraints triggered"
    assert newest["rule_impact"] == "gate PASS->BLOCK; +SC-STORM-001"
    assert newest["action_taken"] == "Policy gate BLOCK; blocked: dispatch_crews, reroute_load"
    assert newest["trigger"] == "STORM ACTIVE severity 3: 1 safety constraint(s) triggered"
    assert newest["deterministic_hash"] == r2.json()["meta"]["deterministicHash"]


def test_decision_detail_carries_metadata_and_chain(build_app):
    app = build_app(auth_enabled=False)
    event_id = _event_id()

    with TestClient(app) as client:
        client.post("/evaluate", json=_storm(event_id, "ACTIVE"))
        item = client.get("/decisions", params={"event_id": event_id}).json()["items"][0]
        detail = client.get(f"/decisions/{item['id']}").json()

    assert detail["metadata"]["policyGate"] == "BLOCK"
    assert detail["metadata"]["triggeredConstraints"] == ["SC-STORM-001"]
    assert detail["metadata"]["decisionDiff"] is None
    assert detail["response"]["policyGate"] == "BLOCK"
    assert len(detail["chain_hash"]) == 64

    db = next(get_db())
    try:
        assert verify_chain(db)
    finally:
        db.close()


def test_operator_entries_and_filters(build_app):
    app = build_app(auth_enabled=False)
    event_id = _event_id()

    with TestClient(app) as client:
        created = client.post(
            "/decisions",
            json={
                "event_id": event_id,
                "source": "Operator",
                "trigger": "Field report: conductor down on Elm St.",
                "action_taken": "Held crews at staging",
                "metadata": {"operator": "dispatch-2"},
            },
        )
        assert created.status_code == 201, created.text
        assert created.json()["source"] == "Operator"
        assert created.json()["metadata"] == {"operator": "dispatch-2"}

        only_rule_engine = client.get("/decisions", params={"event_id": event_id, "source": "Rule Engine"})
        assert only_rule_engine.json()["total"] == 0

        reserved = client.post(
            "/decisions",
            json={"event_id": event_id, "source": "Rule Engine", "trigger": "x", "action_taken": "y"},
        )
        assert reserved.status_code == 422

        missing = client.get("/decisions/987654321")
        assert missing.status_code == 404


def test_decision_log_can_be_disabled(build_app):
    app = build_app(auth_enabled=False, decision_log_enabled=False)
    event_id = _event_id()

    with TestClient(app) as client:
        assert client.post("/evaluate", json=_storm(event_id, "ACTIVE")).status_code == 200
        assert client.get("/decisions", params={"event_id": event_id}).json()["total"] == 0


def _errors() -> float:
    return REGISTRY.get_sample_value("outagegate_decision_log_errors_total") or 0.0


class _BrokenSession:
    def __init__(self):
        self.rolled_back = False

    def query(self, *_args, **_kwargs):
        raise RuntimeError("database is locked")

    def rollback(self):
        self.rolled_back = True


def test_failed_write_is_counted_and_swallowed():
    inp = normalize_scenario(_storm(_event_id(), "ACTIVE"))
    result = evaluate_policy(inp)
    db = _BrokenSession()

    before = _errors()
    assert record_evaluation(db, inp, result) is None
    assert db.rolled_back
    assert _errors() == before + 1


def _operator_entry(event_id: str, trigger: str = "Field report") -> DecisionLogCreate:
    return DecisionLogCreate(
        event_id=event_id,
        source=DecisionSource.OPERATOR,
        trigger=trigger,
        action_taken="Noted",
    )


def _tail(db) -> DecisionLogRecord:
    return db.query(DecisionLogRecord).order_by(DecisionLogRecord.id.desc()).first()


def test_concurrent_evaluations_keep_a_single_chain():
    inp = normalize_scenario(_storm(_event_id(), "ACTIVE"))
    result = evaluate_policy(inp)

    def write(_):
        db = next(get_db())
        try:
            rec = record_evaluation(db, inp, result)
            return None if rec is None else rec.prev_hash
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        prev_hashes = list(pool.map(write, range(24)))

    assert None not in prev_hashes
    assert len(set(prev_hashes)) == len(prev_hashes)

    db = next(get_db())
    try:
        assert verify_chain(db)
    finally:
        db.close()


def test_prev_hash_accepts_one_successor():
    event_id = _event_id()
    db = next(get_db())
    try:
        append_entry(db, _operator_entry(event_id))
        append_entry(db, _operator_entry(event_id))
        tail = _tail(db)
        assert tail.prev_hash is not None

        fork = DecisionLogRecord(
            event_id=event_id,
            timestamp=datetime.now(timezone.utc),
            source=DecisionSource.OPERATOR.value,
            trigger="fork",
            action_taken="fork",
            prev_hash=tail.prev_hash,
            chain_hash="0" * 64,
        )
        db.add(fork)
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
    finally:
        db.close()


def test_append_relinks_when_another_writer_moves_the_tail(monkeypatch):
    event_id = _event_id()
    real_hash_payload = decision_log.hash_payload
    rival_hashes = []

    def racing_hash_payload(rec):
        # first link attempt: another writer lands on the same tail first
        if not rival_hashes:
            other = next(get_db())
            try:
                tail = _tail(other)
                prev = tail.chain_hash if tail is not None else None
                rival = DecisionLogRecord(
                    event_id=event_id,
                    timestamp=datetime.now(timezone.utc),
                    source=DecisionSource.OPERATOR.value,
                    trigger="rival",
                    action_taken="rival",
                    prev_hash=prev,
                )
                rival.chain_hash = compute_chain_hash(prev, real_hash_payload(rival))
                other.add(rival)
                other.commit()
                rival_hashes.append(rival.chain_hash)
            finally:
                other.close()
        return real_hash_payload(rec)

    monkeypatch.setattr(decision_log, "hash_payload", racing_hash_payload)

    db = next(get_db())
    try:
        rec = append_entry(db, _operator_entry(event_id, trigger="ours"))

        assert rec.prev_hash == rival_hashes[0]
        assert verify_chain(db)
    finally:
        db.close()
