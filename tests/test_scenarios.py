from safety_engine import ActionType, EscalationFlag, PolicyGate, evaluate_policy


def _constraint(result, cid):
    return next(c for c in result.safety_constraints if c.id == cid)


def _blocked(result):
    return {b.action for b in result.blocked_actions}


def test_ice_storm_with_exposed_line():
    result = evaluate_policy(
        {
            "scenarioId": "ice-2024-01",
            "hazardType": "ICE",
            "phase": "ACTIVE",
            "severity": 3,
            "customersAffected": 1200,
            "assets": [{"id": "L-17", "type": "line", "ageYears": 35, "vegetationExposure": 0.62}],
            "crews": {"available": 5, "enRoute": 1},
            "dataQuality": {"completeness": 0.9, "freshnessMinutes": 15},
        }
    )

    ice1 = _constraint(result, "SC-ICE-001")
    assert ice1.triggered
    assert ice1.evidence == [
        "Hazard: ICE, phase: ACTIVE.",
        "Remote switching without visual line inspection risks cascading failures on ice-loaded conductors.",
        "1 asset(s) with vegetation exposure > 0.50 identified.",
    ]

    ice2 = _constraint(result, "SC-ICE-002")
    assert ice2.triggered
    assert ice2.evidence == ["Asset L-17 (line) vegetation exposure: 0.62."]

    assert result.policy_gate is PolicyGate.BLOCK
    assert {ActionType.REROUTE_LOAD, ActionType.DEENERGIZE_SECTION} <= _blocked(result)
    assert EscalationFlag.ICE_LOAD_RISK in result.escalation_flags


def test_severe_heat():
    result = evaluate_policy(
        {
            "scenarioId": "heat-1",
            "hazardType": "Heatwave",
            "phase": "ACTIVE",
            "severity": 4,
            "customersAffected": 600,
            "crews": {"available": 8, "enRoute": 0},
        }
    )
    assert {EscalationFlag.TRANSFORMER_THERMAL_STRESS, EscalationFlag.HEAT_LOAD_SPIKE} <= set(result.escalation_flags)
    assert ActionType.REROUTE_LOAD in _blocked(result)
    assert result.policy_gate is PolicyGate.BLOCK


def test_crew_shortfall():
    result = evaluate_policy(
        {
            "scenarioId": "crew-1",
            "hazardType": "RAIN",
            "phase": "POST_EVENT",
            "severity": 2,
            "crews": {"available": 1, "enRoute": 0},
            "estimatedCrewsNeeded": 3,
        }
    )
    assert EscalationFlag.INSUFFICIENT_CREWS in result.escalation_flags
    assert ActionType.REROUTE_LOAD in _blocked(result)
    reroute = next(b for b in result.blocked_actions if b.action is ActionType.REROUTE_LOAD)
    assert reroute.blocked_by == ["SC-CREW-001"]


def test_backup_window_evidence_count_matches_short_loads():
    loads = [
        {"type": "HOSPITAL", "name": "North", "backupHoursRemaining": 1.5},
        {"type": "WATER", "name": "Pump 4", "backupHoursRemaining": 3.9},
        {"type": "TELECOM", "name": "Hub", "backupHoursRemaining": 0},
        {"type": "HOSPITAL", "name": "South", "backupHoursRemaining": 12},
    ]
    result = evaluate_policy({"scenarioId": "crit-2", "criticalLoads": loads, "crews": {"available": 9}})

    crit2 = _constraint(result, "SC-CRIT-002")
    assert crit2.triggered
    assert crit2.evidence == [
        "HOSPITAL (North) backup window 1.5h (< 4.0h).",
        "WATER (Pump 4) backup window 3.9h (< 4.0h).",
        "TELECOM (Hub) backup window 0.0h (< 4.0h).",
    ]
    # CRIT-001 blocks de-energization for these life-safety loads
    assert ActionType.DEENERGIZE_SECTION in _blocked(result)


def test_warn_only_when_nothing_is_blocked():
    result = evaluate_policy(
        {
            "scenarioId": "warn-1",
            "hazardType": "STORM",
            "phase": "POST_EVENT",
            "severity": 2,
            "criticalLoads": [{"type": "SHELTER", "name": "Gym", "backupHoursRemaining": 2}],
            "crews": {"available": 6},
        }
    )
    assert result.policy_gate is PolicyGate.WARN
    assert result.blocked_actions == []
    assert result.escalation_flags == [EscalationFlag.CRITICAL_BACKUP_WINDOW_SHORT]


def test_quiet_scenario_passes():
    result = evaluate_policy(
        {
            "scenarioId": "quiet-1",
            "hazardType": "RAIN",
            "phase": "PRE_EVENT",
            "severity": 1,
            "customersAffected": 50,
            "assets": [{"id": "F1", "type": "feeder", "loadCriticality": 0.3}],
            "crews": {"available": 4, "enRoute": 0},
            "dataQuality": {"completeness": 0.95, "freshnessMinutes": 5},
        }
    )
    assert result.policy_gate is PolicyGate.PASS
    assert result.escalation_flags == []
    assert len(result.allowed_actions) == len(ActionType)


def test_empty_request_still_evaluates():
    result = evaluate_policy({})
    assert result.meta.scenario_id == "unknown_scenario"
    # no crews reported against a derived need of 4
    assert EscalationFlag.INSUFFICIENT_CREWS in result.escalation_flags
    assert result.policy_gate is PolicyGate.BLOCK
    assert result.explainability.data_quality_warnings
