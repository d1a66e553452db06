# safety_engine/__init__.py
from __future__ import annotations

from loguru import logger

from .audit import ENGINE_VERSION, canonical_json, deterministic_hash
from .evaluate import evaluate_normalized, evaluate_policy
from .normalize import normalize_scenario
from .rules import RULES, evaluate_constraints
from .types import (
    ActionType,
    EscalationFlag,
    EvaluationInput,
    HazardType,
    Phase,
    PolicyGate,
    PolicyResult,
)

# library convention: silent unless the host application opts in
logger.disable("safety_engine")

__all__ = [
    "ENGINE_VERSION",
    "RULES",
    "ActionType",
    "EscalationFlag",
    "EvaluationInput",
    "HazardType",
    "Phase",
    "PolicyGate",
    "PolicyResult",
    "canonical_json",
    "deterministic_hash",
    "evaluate_constraints",
    "evaluate_normalized",
    "evaluate_policy",
    "normalize_scenario",
]
