from api.decision_diff import compute_decision_diff, snapshot_from_result
from safety_engine import evaluate_policy


def _snap(gate, constraints, flags=(), h="a" * 64):
    return {
        "policy_gate": gate,
        "triggered_constraints": list(constraints),
        "escalation_flags": list(flags),
        "deterministic_hash": h,
    }


def test_no_previous_decision_means_no_diff():
    assert compute_decision_diff(None, _snap("PASS", [])) is None
    assert compute_decision_diff({}, _snap("PASS", [])) is None


def test_gate_change_and_constraint_churn():
    prev = _snap("WARN", ["SC-CRIT-002"], ["critical_backup_window_short"])
    curr = _snap("BLOCK", ["SC-CRIT-002", "SC-STORM-001"], ["critical_backup_window_short", "storm_active"], "b" * 64)

    diff = compute_decision_diff(prev, curr)
    assert diff is not None
    fields = [c["field"] for c in diff["changes"]]
    assert fields == ["policy_gate", "triggered_constraints", "escalation_flags", "deterministic_hash"]
    assert diff["changes"][0] == {"field": "policy_gate", "from": "WARN", "to": "BLOCK"}
    assert diff["changes"][1] == {"field": "triggered_constraints", "added": ["SC-STORM-001"], "removed": []}
    assert diff["summary"] == "gate WARN->BLOCK; +SC-STORM-001"


def test_identical_snapshots():
    snap = _snap("PASS", [])
    diff = compute_decision_diff(snap, dict(snap))
    assert diff["changes"] == []
    assert diff["summary"] == "no change"


def test_input_change_without_policy_change():
    diff = compute_decision_diff(_snap("PASS", []), _snap("PASS", [], h="c" * 64))
    assert diff["summary"] == "input changed, policy unchanged"


def test_snapshot_from_result():
    result = evaluate_policy({"hazardType": "STORM", "phase": "ACTIVE", "crews": {"available": 9}})
    snap = snapshot_from_result(result)
    assert snap["policy_gate"] == "BLOCK"
    assert snap["triggered_constraints"] == ["SC-STORM-001"]
    assert snap["escalation_flags"] == ["storm_active", "high_wind_conductor_risk"]
    assert snap["deterministic_hash"] == result.meta.deterministic_hash
