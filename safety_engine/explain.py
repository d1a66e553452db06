from __future__ import annotations

from typing import Final, List, Sequence, Tuple

from safety_engine import facts
from safety_engine.types import (
    Driver,
    EtrBand,
    EtrBandLevel,
    EvaluationInput,
    Explainability,
    HazardType,
    Phase,
    SafetyConstraint,
)

DATA_COMPLETENESS_MIN: Final[float] = 0.75
FRESHNESS_MAX_MINUTES: Final[int] = 60

# Relative emphasis for the UI "why" panel. Not probabilities.
_HAZARD_MULTIPLIER: Final[dict[HazardType, float]] = {
    HazardType.STORM: 1.25,
    HazardType.WILDFIRE: 1.4,
    HazardType.RAIN: 1.1,
    HazardType.HEAT: 1.15,
    HazardType.ICE: 1.2,
    HazardType.UNKNOWN: 1.0,
}

# (vegetation weight, load criticality weight)
_DEFAULT_WEIGHTS: Final[Tuple[float, float]] = (0.25, 0.30)
_HAZARD_WEIGHTS: Final[dict[HazardType, Tuple[float, float]]] = {
    HazardType.HEAT: (0.15, 0.40),
    HazardType.ICE: (0.45, 0.15),
    HazardType.WILDFIRE: (0.45, 0.15),
}

_HAZARD_WEIGHT_NOTES: Final[dict[HazardType, Tuple[str, ...]]] = {
    HazardType.HEAT: (
        "HEAT hazard: avg_load_criticality weight elevated to 0.40 (cooling load priority).",
        "HEAT hazard: avg_vegetation_exposure weight reduced to 0.15 (less relevant in heat events).",
    ),
    HazardType.ICE: (
        "ICE hazard: avg_vegetation_exposure weight elevated to 0.45 (ice accumulation on lines is primary failure driver).",
        "ICE hazard: avg_load_criticality weight reduced to 0.15 (line mechanical risk dominates over load profile).",
    ),
    HazardType.WILDFIRE: (
        "WILDFIRE hazard: avg_vegetation_exposure weight elevated to 0.45 (dry brush is primary ignition driver).",
        "WILDFIRE hazard: avg_load_criticality weight reduced to 0.15 (vegetation exposure dominates over load profile).",
    ),
}

STATIC_ASSUMPTIONS: Final[Tuple[str, ...]] = (
    "Missing fields are normalized to conservative defaults.",
    "Safety constraints are evaluated independently; no constraint depends on another constraint's outcome.",
    "Driver weights express relative emphasis only and are not probabilities.",
)

_AGE_HORIZON_YEARS = 60.0
_HEAT_PENALTY_PER_MINUTE = 0.002
_HEAT_PENALTY_CAP = 0.25


def _clamp(v: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, v))


def hazard_weights(hazard: HazardType) -> Tuple[float, float]:
    return _HAZARD_WEIGHTS.get(hazard, _DEFAULT_WEIGHTS)


def asset_risk_score(inp: EvaluationInput) -> int:
    """
    Heuristic 0..100 asset risk score.

    age factor (35 pts) + weighted vegetation + weighted load criticality +
    severity (10 pts), scaled by a per-hazard multiplier.
    """
    veg_weight, crit_weight = hazard_weights(inp.hazard_type)
    age_factor = _clamp(facts.avg_asset_age_years(inp) / _AGE_HORIZON_YEARS)

    raw = (
        age_factor * 35
        + facts.avg_vegetation_exposure(inp) * veg_weight * 100
        + facts.avg_load_criticality(inp) * crit_weight * 100
        + (inp.severity / 5) * 10
    ) * _HAZARD_MULTIPLIER[inp.hazard_type]

    return int(_clamp(float(round(raw)), 0.0, 100.0))


def data_quality_warnings(inp: EvaluationInput) -> List[str]:
    warnings = list(inp.normalization_notes)
    dq = inp.data_quality
    if dq.completeness < DATA_COMPLETENESS_MIN:
        warnings.append(
            f"Data completeness {dq.completeness:.2f} is below the {DATA_COMPLETENESS_MIN:.2f} threshold."
        )
    if dq.freshness_minutes > FRESHNESS_MAX_MINUTES:
        warnings.append(
            f"Input data is {dq.freshness_minutes} minutes old (staleness bound {FRESHNESS_MAX_MINUTES} minutes)."
        )
    return warnings


def _heat_penalty(inp: EvaluationInput) -> float:
    if inp.hazard_type is not HazardType.HEAT:
        return 0.0
    over = inp.data_quality.freshness_minutes - FRESHNESS_MAX_MINUTES
    if over <= 0:
        return 0.0
    return _clamp(over * _HEAT_PENALTY_PER_MINUTE, 0.0, _HEAT_PENALTY_CAP)


def estimate_etr_band(inp: EvaluationInput, warnings: Sequence[str]) -> EtrBand:
    """
    Confidence band for the estimated time to restoration.

    HIGH needs good, fresh data, enough crews and no escalating hazard; LOW
    covers missing inputs, severe escalating hazards or a crew shortfall;
    everything else is MEDIUM.
    """
    dq = inp.data_quality
    sufficient = facts.crews_sufficient(inp)
    escalating = inp.phase is Phase.ACTIVE and inp.hazard_type in (HazardType.STORM, HazardType.WILDFIRE)
    penalty = _heat_penalty(inp)
    rationale: List[str] = []

    if penalty > 0:
        rationale.append(
            f"Thermal grid data is {dq.freshness_minutes} minutes old; stale readings degrade HEAT ETR accuracy."
        )

    data_good = (
        dq.completeness >= DATA_COMPLETENESS_MIN
        and dq.freshness_minutes <= FRESHNESS_MAX_MINUTES
        and not warnings
    )
    missing_inputs = not inp.assets or inp.customers_affected == 0

    if data_good and sufficient and not escalating:
        rationale.extend(
            [
                "Data quality is strong and current.",
                "Crew capacity meets estimated demand.",
                "Hazard conditions are not rapidly escalating.",
            ]
        )
        return EtrBand(
            band=EtrBandLevel.HIGH,
            confidence=round(_clamp(0.85 - penalty, 0.5, 0.85), 3),
            rationale=rationale,
        )

    severe_escalating = escalating and inp.severity >= 4
    if missing_inputs or severe_escalating or not sufficient:
        if missing_inputs:
            rationale.append("Missing key operational inputs (assets or customers affected).")
        if severe_escalating:
            rationale.append("Active severe hazard creates uncertain restoration path.")
        if not sufficient:
            rationale.append("Crew availability is below estimated need.")
        if warnings:
            rationale.append("Data quality warnings reduce confidence in precision.")
        return EtrBand(
            band=EtrBandLevel.LOW,
            confidence=round(_clamp(0.35 - len(warnings) * 0.03 - penalty, 0.1, 0.45), 3),
            rationale=rationale,
        )

    rationale.extend(
        [
            "Conditions are mixed across hazard, workforce, and data quality.",
            f"Data completeness={dq.completeness:.2f}, freshness={dq.freshness_minutes} minutes.",
            f"Crews sufficient={'yes' if sufficient else 'no'}.",
        ]
    )
    if penalty > 0:
        rationale.append(f"HEAT stale-data confidence penalty applied: -{penalty * 100:.0f}%.")
    return EtrBand(
        band=EtrBandLevel.MEDIUM,
        confidence=round(_clamp(0.62 - penalty, 0.35, 0.62), 3),
        rationale=rationale,
    )


def _assumptions(inp: EvaluationInput) -> List[str]:
    out = list(STATIC_ASSUMPTIONS)

    if inp.crews.estimate_supplied:
        out.append("Estimated crew need was supplied with the request.")
    else:
        out.append("Estimated crew need is derived from customers affected and severity.")

    if inp.crews.total == 0:
        out.append("Crew counts are best-effort estimates; no available or en-route crews were reported.")
    if not inp.assets:
        out.append("No assets provided; using scenario-level defaults for risk scoring.")
    if inp.hazard_type is HazardType.UNKNOWN:
        out.append("Hazard type is UNKNOWN; hazard-specific constraints were not applied.")
    if inp.phase is Phase.UNKNOWN:
        out.append("Event phase is UNKNOWN; phase-scoped constraints were not applied.")

    out.extend(_HAZARD_WEIGHT_NOTES.get(inp.hazard_type, ()))
    return out


def _drivers(inp: EvaluationInput, etr: EtrBand) -> List[Driver]:
    veg_weight, crit_weight = hazard_weights(inp.hazard_type)
    return [
        Driver(key="avg_asset_age_years", value=round(facts.avg_asset_age_years(inp), 1), weight=0.35),
        Driver(key="hazard_type", value=inp.hazard_type.value, weight=0.25),
        Driver(key="avg_vegetation_exposure", value=round(facts.avg_vegetation_exposure(inp), 2), weight=veg_weight),
        Driver(key="avg_load_criticality", value=round(facts.avg_load_criticality(inp), 2), weight=crit_weight),
        Driver(key="asset_risk_score", value=asset_risk_score(inp), weight=1.0),
        Driver(key="severity", value=inp.severity, weight=0.3),
        Driver(key="customers_affected", value=inp.customers_affected, weight=0.25),
        Driver(key="crews_sufficient", value=facts.crews_sufficient(inp), weight=0.35),
        Driver(key="etr_band", value=etr.band.value, weight=0.4),
    ]


def compose_explainability(
    inp: EvaluationInput,
    constraints: Sequence[SafetyConstraint],
) -> Tuple[Explainability, EtrBand]:
    warnings = data_quality_warnings(inp)
    etr = estimate_etr_band(inp, warnings)

    assumptions = _assumptions(inp)
    if not any(c.triggered for c in constraints):
        assumptions.append("No safety constraint triggered for this scenario.")

    return (
        Explainability(
            drivers=_drivers(inp, etr),
            assumptions=assumptions,
            data_quality_warnings=warnings,
        ),
        etr,
    )


__all__ = [
    "DATA_COMPLETENESS_MIN",
    "FRESHNESS_MAX_MINUTES",
    "STATIC_ASSUMPTIONS",
    "hazard_weights",
    "asset_risk_score",
    "data_quality_warnings",
    "estimate_etr_band",
    "compose_explainability",
]
