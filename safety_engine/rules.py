from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Final, List, Optional, Sequence, Tuple

from safety_engine import evidence, facts
from safety_engine.types import (
    ActionType,
    ConstraintSeverity,
    EscalationFlag,
    EvaluationInput,
    HazardType,
    Phase,
    SafetyConstraint,
)

LOAD_CRITICALITY_THRESHOLD: Final[float] = 0.70
BACKUP_WINDOW_HOURS: Final[float] = 4.0
ICE_VEGETATION_THRESHOLD: Final[float] = 0.50
WILDFIRE_VEGETATION_THRESHOLD: Final[float] = 0.60
HEAT_STRESS_SEVERITY: Final[int] = 3
HEAT_SPIKE_SEVERITY: Final[int] = 4

Predicate = Callable[[EvaluationInput], bool]
Selector = Callable[[EvaluationInput], Sequence[evidence.Entity]]


@dataclass(frozen=True)
class EvidenceLine:
    """
    One evidence template.

    per_item lines render once per matched entity; the rest render once,
    and only when ``when`` (if given) holds for the scenario.
    """

    template: str
    when: Optional[Predicate] = None
    per_item: bool = False


@dataclass(frozen=True)
class BlockSpec:
    action: ActionType
    reason: str
    remediation: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ConstraintRule:
    id: str
    title: str
    description: str
    severity: ConstraintSeverity
    evidence: Tuple[EvidenceLine, ...]
    flags: Tuple[EscalationFlag, ...] = ()
    blocks: Tuple[BlockSpec, ...] = ()
    # None means "any"
    hazards: Optional[frozenset[HazardType]] = None
    phases: Optional[frozenset[Phase]] = None
    min_severity: int = 1
    # scenario-level trigger; with a selector and no condition, the rule
    # triggers iff the selector matches at least one entity
    condition: Optional[Predicate] = None
    items: Optional[Selector] = None

    def applies(self, inp: EvaluationInput) -> bool:
        if self.hazards is not None and inp.hazard_type not in self.hazards:
            return False
        if self.phases is not None and inp.phase not in self.phases:
            return False
        return inp.severity >= self.min_severity


@dataclass(frozen=True)
class RuleMatch:
    triggered: bool
    matched: Tuple[evidence.Entity, ...] = field(default_factory=tuple)


def match_rule(rule: ConstraintRule, inp: EvaluationInput) -> RuleMatch:
    if not rule.applies(inp):
        return RuleMatch(triggered=False)

    matched = tuple(rule.items(inp)) if rule.items is not None else ()
    if rule.condition is not None:
        triggered = rule.condition(inp)
    elif rule.items is not None:
        triggered = bool(matched)
    else:
        triggered = True
    return RuleMatch(triggered=triggered, matched=matched)


def render_evidence(rule: ConstraintRule, inp: EvaluationInput, match: RuleMatch) -> List[str]:
    if not match.triggered:
        return []

    ctx = evidence.scenario_context(inp)
    lines: List[str] = []
    for line in rule.evidence:
        if line.per_item:
            lines.extend(evidence.render(line.template, ctx, item) for item in match.matched)
            continue
        if line.when is not None and not line.when(inp):
            continue
        lines.append(evidence.render(line.template, ctx, matched_count=len(match.matched)))
    return lines


def evaluate_rule(rule: ConstraintRule, inp: EvaluationInput) -> SafetyConstraint:
    match = match_rule(rule, inp)
    return SafetyConstraint(
        id=rule.id,
        title=rule.title,
        description=rule.description,
        severity=rule.severity,
        triggered=match.triggered,
        evidence=render_evidence(rule, inp, match),
        escalation_flags=list(rule.flags),
        blocked_actions=[b.action for b in rule.blocks],
    )


def evaluate_constraints(
    inp: EvaluationInput, rules: Sequence[ConstraintRule] | None = None
) -> List[SafetyConstraint]:
    """Evaluate every rule independently; output keeps table order, triggered or not."""
    return [evaluate_rule(rule, inp) for rule in (RULES if rules is None else rules)]


# --------------------------------------------------------------------------------------
# Predicates / selectors
# --------------------------------------------------------------------------------------


def _has_life_safety_load(inp: EvaluationInput) -> bool:
    return bool(facts.life_safety_loads(inp))


def _high_load_criticality(inp: EvaluationInput) -> bool:
    return facts.avg_load_criticality(inp) >= LOAD_CRITICALITY_THRESHOLD


def _critical_load_at_risk(inp: EvaluationInput) -> bool:
    return _has_life_safety_load(inp) or _high_load_criticality(inp)


def _short_backup(inp: EvaluationInput) -> Sequence[evidence.Entity]:
    return facts.short_backup_loads(inp, BACKUP_WINDOW_HOURS)


def _crew_shortfall(inp: EvaluationInput) -> bool:
    return not facts.crews_sufficient(inp)


def _ice_exposed(inp: EvaluationInput) -> Sequence[evidence.Entity]:
    return facts.exposed_assets(inp, ICE_VEGETATION_THRESHOLD)


def _has_ice_exposed(inp: EvaluationInput) -> bool:
    return bool(_ice_exposed(inp))


def _wildfire_exposed(inp: EvaluationInput) -> Sequence[evidence.Entity]:
    return facts.exposed_assets(inp, WILDFIRE_VEGETATION_THRESHOLD)


def _always(_inp: EvaluationInput) -> bool:
    return True


# --------------------------------------------------------------------------------------
# Rule table
# --------------------------------------------------------------------------------------

_BLOCK_DEENERGIZE_CRITICAL = BlockSpec(
    action=ActionType.DEENERGIZE_SECTION,
    reason="De-energization would interrupt critical service continuity.",
    remediation=(
        "Prioritize critical load restoration path before this action.",
        "Confirm backup generation status at affected critical facilities.",
    ),
)

_BLOCK_REROUTE_CREW = BlockSpec(
    action=ActionType.REROUTE_LOAD,
    reason="Crew shortfall increases operational switching risk and slows verification loops.",
    remediation=(
        "Stage additional switching-qualified crews.",
        "Use mutual aid or postpone reroute until minimum crew threshold is met.",
    ),
)

_BLOCK_REROUTE_HEAT = BlockSpec(
    action=ActionType.REROUTE_LOAD,
    reason="Rerouting adds load to transformers already under thermal stress.",
    remediation=(
        "Verify transformer loading against emergency thermal ratings.",
        "Defer reroute until ambient temperature or feeder load drops.",
    ),
)

_BLOCK_REROUTE_HEAT_SPIKE = BlockSpec(
    action=ActionType.REROUTE_LOAD,
    reason="Cooling demand spike leaves no feeder headroom for rerouted load.",
    remediation=(
        "Coordinate demand response or conservation messaging before switching.",
        "Verify transformer loading against emergency thermal ratings.",
    ),
)

_BLOCK_DISPATCH_FLOOD = BlockSpec(
    action=ActionType.DISPATCH_CREWS,
    reason="Flooded access routes endanger field crews.",
    remediation=(
        "Confirm road and substation access with emergency management.",
        "Stage crews at elevated staging areas until water recedes.",
    ),
)

_BLOCK_DISPATCH_STORM = BlockSpec(
    action=ActionType.DISPATCH_CREWS,
    reason="Active storm winds make field work unsafe.",
    remediation=(
        "Hold crews at staging until sustained winds drop below bucket-truck limits.",
        "Pre-position crews and materials for post-storm restoration.",
    ),
)

_BLOCK_REROUTE_STORM = BlockSpec(
    action=ActionType.REROUTE_LOAD,
    reason="Switching during active storm risks re-energizing downed conductors.",
    remediation=(
        "Wait for patrol confirmation of line state before switching.",
    ),
)

_BLOCK_REROUTE_ICE = BlockSpec(
    action=ActionType.REROUTE_LOAD,
    reason="Switching on ice-loaded lines without visual confirmation risks equipment damage and crew safety.",
    remediation=(
        "Obtain crew visual confirmation of line state before switching.",
        "Re-evaluate once ice accumulation stops.",
    ),
)

_BLOCK_DEENERGIZE_ICE = BlockSpec(
    action=ActionType.DEENERGIZE_SECTION,
    reason="Field switching to de-energize ice-loaded sections is unsafe while the event is active.",
    remediation=(
        "Obtain crew visual confirmation of line state before switching.",
        "Coordinate de-energization with the incident commander after the ice event.",
    ),
)

_BLOCK_DEENERGIZE_WILDFIRE = BlockSpec(
    action=ActionType.DEENERGIZE_SECTION,
    reason="Vegetation fire risk active; aerial assessment required before field switching.",
    remediation=(
        "Complete aerial fire line clearance.",
        "Obtain confirmation from incident commander.",
        "Re-evaluate once vegetation exposure drops below 0.60 threshold.",
    ),
)


RULES: Final[Tuple[ConstraintRule, ...]] = (
    ConstraintRule(
        id="SC-CRIT-001",
        title="Critical service continuity",
        description="Actions must prioritize restoration and continuity for critical services.",
        severity=ConstraintSeverity.HIGH,
        condition=_critical_load_at_risk,
        evidence=(
            EvidenceLine(
                "Critical load types detected: {life_safety_load_types}.",
                when=_has_life_safety_load,
            ),
            EvidenceLine(
                "Average load criticality is {avg_load_criticality} (>= 0.70).",
                when=_high_load_criticality,
            ),
        ),
        flags=(EscalationFlag.CRITICAL_LOAD_AT_RISK,),
        blocks=(_BLOCK_DEENERGIZE_CRITICAL,),
    ),
    ConstraintRule(
        id="SC-CRIT-002",
        title="Backup power depletion risk",
        description="If backup windows are short, defer non-essential switching work and accelerate support.",
        severity=ConstraintSeverity.HIGH,
        items=_short_backup,
        evidence=(
            EvidenceLine("{load_label} backup window {backup_hours}h (< 4.0h).", per_item=True),
        ),
        flags=(EscalationFlag.CRITICAL_BACKUP_WINDOW_SHORT,),
    ),
    ConstraintRule(
        id="SC-CREW-001",
        title="Field crew sufficiency",
        description="High-risk switching and restoration actions require adequate crew staffing.",
        severity=ConstraintSeverity.HIGH,
        condition=_crew_shortfall,
        evidence=(
            EvidenceLine("Crews available + en-route: {crews_total}."),
            EvidenceLine("Estimated crews needed: {crews_needed}."),
        ),
        flags=(EscalationFlag.INSUFFICIENT_CREWS,),
        blocks=(_BLOCK_REROUTE_CREW,),
    ),
    ConstraintRule(
        id="SC-HEAT-001",
        title="Transformer thermal stress",
        description="Sustained heat pushes transformer cooling limits and accelerates insulation aging.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.HEAT}),
        min_severity=HEAT_STRESS_SEVERITY,
        evidence=(
            EvidenceLine("Hazard: HEAT at severity {severity}/5 (>= 3)."),
            EvidenceLine("Ambient heat may accelerate transformer insulation degradation under sustained load."),
        ),
        flags=(EscalationFlag.TRANSFORMER_THERMAL_STRESS,),
        blocks=(_BLOCK_REROUTE_HEAT,),
    ),
    ConstraintRule(
        id="SC-HEAT-002",
        title="Heat load spike",
        description="Severe heat drives cooling demand toward feeder and transformer thermal limits.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.HEAT}),
        min_severity=HEAT_SPIKE_SEVERITY,
        evidence=(
            EvidenceLine("Hazard: HEAT at severity {severity}/5 (>= 4)."),
            EvidenceLine("Cooling load spike expected; feeder headroom is not available for transfers."),
        ),
        flags=(EscalationFlag.HEAT_LOAD_SPIKE, EscalationFlag.TRANSFORMER_THERMAL_STRESS),
        blocks=(_BLOCK_REROUTE_HEAT_SPIKE,),
    ),
    ConstraintRule(
        id="SC-FLOOD-001",
        title="Flood access restriction",
        description="Crew dispatch into flooded areas is restricted while rain events are active.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.RAIN}),
        phases=frozenset({Phase.ACTIVE}),
        evidence=(
            EvidenceLine("Hazard: RAIN, phase: ACTIVE."),
            EvidenceLine("Standing water may block substation and feeder access routes."),
        ),
        flags=(EscalationFlag.FLOOD_ACCESS_RISK,),
        blocks=(_BLOCK_DISPATCH_FLOOD,),
    ),
    ConstraintRule(
        id="SC-STORM-001",
        title="Active storm field restriction",
        description="Field work and switching are restricted while a storm is active.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.STORM}),
        phases=frozenset({Phase.ACTIVE}),
        evidence=(
            EvidenceLine("Hazard: STORM, phase: ACTIVE."),
            EvidenceLine("High winds raise conductor contact and flying debris risk for crews and switching."),
        ),
        flags=(EscalationFlag.STORM_ACTIVE, EscalationFlag.HIGH_WIND_CONDUCTOR_RISK),
        blocks=(_BLOCK_DISPATCH_STORM, _BLOCK_REROUTE_STORM),
    ),
    ConstraintRule(
        id="SC-ICE-001",
        title="Ice storm switching prohibition",
        description=(
            "Load rerouting via switching is prohibited during active ICE events "
            "without crew visual confirmation of line state."
        ),
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.ICE}),
        phases=frozenset({Phase.ACTIVE}),
        condition=_always,
        items=_ice_exposed,
        evidence=(
            EvidenceLine("Hazard: ICE, phase: ACTIVE."),
            EvidenceLine(
                "Remote switching without visual line inspection risks cascading failures on ice-loaded conductors."
            ),
            EvidenceLine(
                "{matched_count} asset(s) with vegetation exposure > 0.50 identified.",
                when=_has_ice_exposed,
            ),
        ),
        flags=(EscalationFlag.ICE_LOAD_RISK,),
        blocks=(_BLOCK_REROUTE_ICE, _BLOCK_DEENERGIZE_ICE),
    ),
    ConstraintRule(
        id="SC-ICE-002",
        title="Ice vegetation line loading",
        description="Assets with high vegetation exposure are at elevated risk of conductor failure under ice accumulation.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.ICE}),
        items=_ice_exposed,
        evidence=(
            EvidenceLine(
                "Asset {asset_id} ({asset_type}) vegetation exposure: {vegetation_exposure}.",
                per_item=True,
            ),
        ),
        flags=(EscalationFlag.ICE_LOAD_RISK,),
    ),
    ConstraintRule(
        id="SC-WILD-001",
        title="Wildfire vegetation ignition risk",
        description="Assets with heavy vegetation exposure are ignition and line-contact risks during wildfire conditions.",
        severity=ConstraintSeverity.HIGH,
        hazards=frozenset({HazardType.WILDFIRE}),
        items=_wildfire_exposed,
        evidence=(
            EvidenceLine("{matched_count} asset(s) with vegetation exposure > 0.60 under WILDFIRE hazard."),
            EvidenceLine(
                "Asset {asset_id} ({asset_type}) vegetation exposure: {vegetation_exposure}.",
                per_item=True,
            ),
        ),
        flags=(EscalationFlag.VEGETATION_FIRE_RISK,),
        blocks=(_BLOCK_DEENERGIZE_WILDFIRE,),
    ),
)

RULES_BY_ID: Final[dict[str, ConstraintRule]] = {r.id: r for r in RULES}

# Every hazard must be listed here, including ones with no hazard-scoped rule,
# so a new HazardType member fails tests until its rules are decided.
HAZARD_RULES: Final[dict[HazardType, Tuple[str, ...]]] = {
    HazardType.STORM: ("SC-STORM-001",),
    HazardType.WILDFIRE: ("SC-WILD-001",),
    HazardType.RAIN: ("SC-FLOOD-001",),
    HazardType.HEAT: ("SC-HEAT-001", "SC-HEAT-002"),
    HazardType.ICE: ("SC-ICE-001", "SC-ICE-002"),
    HazardType.UNKNOWN: (),
}


__all__ = [
    "LOAD_CRITICALITY_THRESHOLD",
    "BACKUP_WINDOW_HOURS",
    "ICE_VEGETATION_THRESHOLD",
    "WILDFIRE_VEGETATION_THRESHOLD",
    "EvidenceLine",
    "BlockSpec",
    "ConstraintRule",
    "RuleMatch",
    "match_rule",
    "render_evidence",
    "evaluate_rule",
    "evaluate_constraints",
    "RULES",
    "RULES_BY_ID",
    "HAZARD_RULES",
]
