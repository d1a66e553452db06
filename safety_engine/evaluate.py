from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from safety_engine.audit import Clock, stamp
from safety_engine.explain import compose_explainability
from safety_engine.gate import aggregate
from safety_engine.normalize import normalize_scenario
from safety_engine.rules import RULES, evaluate_constraints
from safety_engine.types import EvaluationInput, PolicyResult


def evaluate_normalized(inp: EvaluationInput, *, clock: Optional[Clock] = None) -> PolicyResult:
    constraints = evaluate_constraints(inp, RULES)
    outcome = aggregate(inp, constraints, RULES)
    explainability, etr_band = compose_explainability(inp, constraints)
    meta = stamp(inp, clock=clock)

    logger.bind(
        scenario_id=inp.scenario_id,
        policy_gate=outcome.policy_gate.value,
        deterministic_hash=meta.deterministic_hash,
    ).debug("policy evaluated")

    return PolicyResult(
        policy_gate=outcome.policy_gate,
        allowed_actions=outcome.allowed_actions,
        blocked_actions=outcome.blocked_actions,
        escalation_flags=outcome.escalation_flags,
        safety_constraints=constraints,
        explainability=explainability,
        etr_band=etr_band,
        meta=meta,
    )


def evaluate_policy(raw: Any, *, clock: Optional[Clock] = None) -> PolicyResult:
    """
    Evaluate one outage snapshot.

    Input:
      - raw: evaluation request (dict, pydantic model, or an already
        normalized EvaluationInput). Malformed or missing fields never raise.
      - clock: optional zero-arg callable returning the evaluation time.

    Output:
      - PolicyResult. Identical normalized input gives an identical result
        apart from meta.evaluated_at.
    """
    inp = raw if isinstance(raw, EvaluationInput) else normalize_scenario(raw)
    return evaluate_normalized(inp, clock=clock)


__all__ = ["evaluate_policy", "evaluate_normalized"]
