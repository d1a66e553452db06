# api/evaluate.py
from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session

from api.auth import require_api_key
from api.config import get_settings
from api.db import get_db
from api.decision_log import record_evaluation
from api.metrics import (
    POLICY_EVALUATION_FAILURES,
    POLICY_EVALUATION_LATENCY_SECONDS,
    POLICY_EVALUATIONS,
)
from api.schemas import EvaluationRequest
from safety_engine import ENGINE_VERSION, evaluate_normalized, normalize_scenario

router = APIRouter(tags=["evaluate"], dependencies=[Depends(require_api_key)])

UNAVAILABLE = "evaluation_unavailable"


@router.post("/evaluate")
def evaluate(
    req: EvaluationRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Run the policy engine over one outage snapshot.

    The engine never raises on bad input; any exception here is an
    infrastructure fault and is reported as 503, never as a BLOCK gate.
    """
    t0 = time.perf_counter()
    try:
        inp = normalize_scenario(req.to_raw())
        result = evaluate_normalized(inp)
    except Exception:
        POLICY_EVALUATION_FAILURES.inc()
        logger.exception("policy evaluation failed")
        return JSONResponse(
            status_code=503,
            content={
                "status": UNAVAILABLE,
                "detail": "Policy evaluation could not be completed; no gate was produced.",
                "engineVersion": ENGINE_VERSION,
            },
        )

    gate = result.policy_gate.value
    POLICY_EVALUATIONS.labels(policy_gate=gate).inc()
    POLICY_EVALUATION_LATENCY_SECONDS.labels(policy_gate=gate).observe(time.perf_counter() - t0)

    logger.bind(
        scenario_id=inp.scenario_id,
        policy_gate=gate,
        blocked=[b.action.value for b in result.blocked_actions],
        deterministic_hash=result.meta.deterministic_hash,
        service=request.app.state.service,
    ).info("evaluation")

    if get_settings().decision_log_enabled:
        record_evaluation(db, inp, result)

    return result.to_json_dict()
