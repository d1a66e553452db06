import uuid

import pytest
from httpx import ASGITransport, AsyncClient

ICE_BODY = {
    "hazardType": "ICE",
    "phase": "ACTIVE",
    "severity": 3,
    "customersAffected": 1200,
    "assets": [{"id": "L-17", "type": "line", "vegetationExposure": 0.62}],
    "crews": {"available": 5, "enRoute": 1},
    "dataQuality": {"completeness": 0.9, "freshnessMinutes": 15},
}


def _body(**overrides) -> dict:
    body = dict(ICE_BODY, scenarioId=f"pytest-{uuid.uuid4().hex[:12]}")
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_evaluate_returns_camel_case_policy_result(build_app):
    app = build_app(auth_enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/evaluate", json=_body())

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["policyGate"] == "BLOCK"
    assert {"reroute_load", "deenergize_section"} <= {b["action"] for b in data["blockedActions"]}
    assert "ice_load_risk" in data["escalationFlags"]
    assert set(data) == {
        "policyGate",
        "allowedActions",
        "blockedActions",
        "escalationFlags",
        "safetyConstraints",
        "explainability",
        "etrBand",
        "meta",
    }
    assert data["meta"]["evaluatedAt"].endswith("Z")


@pytest.mark.asyncio
async def test_same_body_same_hash(build_app):
    app = build_app(auth_enabled=False, decision_log_enabled=False)
    body = _body()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        r1 = await client.post("/evaluate", json=body)
        r2 = await client.post("/v1/evaluate", json=body)

    assert r1.status_code == 200 and r2.status_code == 200
    assert r1.json()["meta"]["deterministicHash"] == r2.json()["meta"]["deterministicHash"]


@pytest.mark.asyncio
async def test_partial_body_is_normalized_not_rejected(build_app):
    app = build_app(auth_enabled=False, decision_log_enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/evaluate", json={"hazardType": "tornado", "severity": "high", "unknownKey": 1})

    assert resp.status_code == 200, resp.text
    warnings = resp.json()["explainability"]["dataQualityWarnings"]
    assert "Unmapped hazardType 'tornado' normalized to UNKNOWN." in warnings
    assert "Missing severity; defaulted to 3." in warnings


@pytest.mark.asyncio
async def test_non_object_body_is_rejected(build_app):
    app = build_app(auth_enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/evaluate", json=[1, 2, 3])

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_engine_failure_is_unavailable_not_block(build_app, monkeypatch):
    import api.evaluate as evaluate_module

    def boom(*_args, **_kwargs):
        raise RuntimeError("rule table corrupted")

    monkeypatch.setattr(evaluate_module, "evaluate_normalized", boom)
    app = build_app(auth_enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/evaluate", json=_body())

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "evaluation_unavailable"
    assert "policyGate" not in body


@pytest.mark.asyncio
async def test_invalid_utf8_in_body_is_evaluated_not_unavailable(build_app):
    app = build_app(auth_enabled=False)
    scenario_id = f"pytest-{uuid.uuid4().hex[:12]}"
    # lone surrogate escapes: legal JSON, not encodable as UTF-8
    body = (
        '{"scenarioId": "%s\\ud800", "hazardType": "ICE", "phase": "ACTIVE",'
        ' "assets": [{"id": "A\\udc00", "type": "line", "vegetationExposure": 0.7}]}'
    ) % scenario_id

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/evaluate",
            content=body.encode("ascii"),
            headers={"content-type": "application/json"},
        )

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["policyGate"] == "BLOCK"
    assert data["meta"]["scenarioId"] == f"{scenario_id}?"
    ice = next(c for c in data["safetyConstraints"] if c["id"] == "SC-ICE-002")
    assert any("A?" in line for line in ice["evidence"])
