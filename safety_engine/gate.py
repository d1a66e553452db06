from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from safety_engine import facts
from safety_engine.rules import RULES, BlockSpec, ConstraintRule
from safety_engine.types import (
    ACTION_UNIVERSE,
    ActionType,
    AllowedAction,
    BlockedAction,
    EscalationFlag,
    EvaluationInput,
    Phase,
    PolicyGate,
    SafetyConstraint,
)

DEFAULT_ALLOWED_REASON = "No triggered safety constraint restricts this action."
SEVERE_ACTIVE_SEVERITY = 4


@dataclass(frozen=True)
class GateOutcome:
    policy_gate: PolicyGate
    allowed_actions: List[AllowedAction]
    blocked_actions: List[BlockedAction]
    escalation_flags: List[EscalationFlag]


def _dedupe(items: Sequence) -> list:
    out: list = []
    for i in items:
        if i not in out:
            out.append(i)
    return out


def decide_gate(constraints: Sequence[SafetyConstraint]) -> PolicyGate:
    triggered = [c for c in constraints if c.triggered]
    if any(c.blocked_actions for c in triggered):
        return PolicyGate.BLOCK
    if triggered:
        return PolicyGate.WARN
    return PolicyGate.PASS


def collect_flags(constraints: Sequence[SafetyConstraint]) -> List[EscalationFlag]:
    return _dedupe([f for c in constraints if c.triggered for f in c.escalation_flags])


def merge_blocked_actions(
    constraints: Sequence[SafetyConstraint],
    rules: Sequence[ConstraintRule] = RULES,
) -> List[BlockedAction]:
    """
    One BlockedAction per action name.

    When several triggered constraints block the same action their distinct
    reasons and remediation steps are concatenated in rule order, and every
    contributing constraint id lands in ``blocked_by``.
    """
    specs: Dict[str, Tuple[BlockSpec, ...]] = {r.id: r.blocks for r in rules}

    reasons: Dict[ActionType, List[str]] = {}
    remediation: Dict[ActionType, List[str]] = {}
    blocked_by: Dict[ActionType, List[str]] = {}

    for c in constraints:
        if not c.triggered:
            continue
        for spec in specs.get(c.id, ()):
            reasons.setdefault(spec.action, []).append(spec.reason)
            remediation.setdefault(spec.action, []).extend(spec.remediation)
            blocked_by.setdefault(spec.action, []).append(c.id)

    return [
        BlockedAction(
            action=action,
            reason=" ".join(_dedupe(reasons[action])),
            remediation=_dedupe(remediation[action]),
            blocked_by=_dedupe(blocked_by[action]),
        )
        for action in ACTION_UNIVERSE
        if action in reasons
    ]


def _allowed_entry(
    action: ActionType,
    inp: EvaluationInput,
    triggered_ids: frozenset[str],
) -> AllowedAction:
    sufficient = facts.crews_sufficient(inp)

    if action is ActionType.DISPATCH_CREWS:
        return AllowedAction(
            action=action,
            reason=(
                "Crew coverage meets estimated restoration demand."
                if sufficient
                else "Dispatch is still allowed to optimize available workforce under constrained conditions."
            ),
            constraints=[
                f"Use incident command priority; estimated crews needed: {inp.crews.estimated_crews_needed}.",
                "Assign at least one crew to critical load corridors first.",
            ],
        )

    if action is ActionType.REROUTE_LOAD:
        return AllowedAction(
            action=action,
            reason="Load reroute can reduce customer minutes interrupted when safe switching is available.",
            constraints=["Confirm feeder thermal limits and crew verification prior to switching."],
        )

    if action is ActionType.DEENERGIZE_SECTION:
        severe_active = inp.phase is Phase.ACTIVE and inp.severity >= SEVERE_ACTIVE_SEVERITY
        return AllowedAction(
            action=action,
            reason=(
                "Controlled de-energization may reduce safety risk during severe active events."
                if severe_active
                else DEFAULT_ALLOWED_REASON
            ),
            constraints=["Requires safety officer approval and critical load impact review."],
        )

    if action is ActionType.PUBLIC_ADVISORY:
        return AllowedAction(
            action=action,
            reason="Public advisory supports transparency and safety messaging.",
            constraints=["Include ETR confidence band and critical service status in message."],
        )

    if action is ActionType.REQUEST_MUTUAL_AID:
        return AllowedAction(
            action=action,
            reason=(
                "Mutual aid can improve restoration speed even when crews are currently sufficient."
                if sufficient
                else "Mutual aid recommended because available + en-route crews are below estimated need."
            ),
            constraints=["Coordinate with neighboring districts and validate travel ETA before commitment."],
        )

    if action is ActionType.PRIORITIZE_CRITICAL_LOAD:
        at_risk = "SC-CRIT-001" in triggered_ids or "SC-CRIT-002" in triggered_ids
        return AllowedAction(
            action=action,
            reason=(
                "Critical loads require restoration priority."
                if at_risk
                else DEFAULT_ALLOWED_REASON
            ),
            constraints=["Sequence switching and restoration to protect hospital, water, and telecom loads."],
        )

    if action is ActionType.GENERATE_RESTORATION_PLAN:
        return AllowedAction(
            action=action,
            reason="Planning action is always permitted and improves dispatch sequencing.",
            constraints=["Recompute plan when crew counts or hazard phase changes."],
        )

    return AllowedAction(action=action, reason=DEFAULT_ALLOWED_REASON)


def aggregate(
    inp: EvaluationInput,
    constraints: Sequence[SafetyConstraint],
    rules: Sequence[ConstraintRule] = RULES,
) -> GateOutcome:
    blocked = merge_blocked_actions(constraints, rules)
    blocked_names = {b.action for b in blocked}
    triggered_ids = frozenset(c.id for c in constraints if c.triggered)

    allowed = [
        _allowed_entry(action, inp, triggered_ids)
        for action in ACTION_UNIVERSE
        if action not in blocked_names
    ]

    return GateOutcome(
        policy_gate=decide_gate(constraints),
        allowed_actions=allowed,
        blocked_actions=blocked,
        escalation_flags=collect_flags(constraints),
    )


__all__ = [
    "DEFAULT_ALLOWED_REASON",
    "GateOutcome",
    "decide_gate",
    "collect_flags",
    "merge_blocked_actions",
    "aggregate",
]
