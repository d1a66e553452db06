from __future__ import annotations

from typing import Final, List

from safety_engine.types import Asset, CriticalLoad, CriticalLoadType, EvaluationInput

# Placeholder values for assets that do not report an attribute.
DEFAULT_ASSET_AGE_YEARS: Final[float] = 15.0
DEFAULT_VEGETATION_EXPOSURE: Final[float] = 0.4
DEFAULT_LOAD_CRITICALITY: Final[float] = 0.5

LIFE_SAFETY_LOAD_TYPES: Final[frozenset[CriticalLoadType]] = frozenset(
    {CriticalLoadType.HOSPITAL, CriticalLoadType.WATER, CriticalLoadType.TELECOM}
)


def _mean(values: List[float], default: float) -> float:
    if not values:
        return default
    return sum(values) / len(values)


def avg_asset_age_years(inp: EvaluationInput) -> float:
    return _mean(
        [a.age_years if a.age_years is not None else DEFAULT_ASSET_AGE_YEARS for a in inp.assets],
        DEFAULT_ASSET_AGE_YEARS,
    )


def avg_vegetation_exposure(inp: EvaluationInput) -> float:
    return _mean(
        [
            a.vegetation_exposure if a.vegetation_exposure is not None else DEFAULT_VEGETATION_EXPOSURE
            for a in inp.assets
        ],
        DEFAULT_VEGETATION_EXPOSURE,
    )


def avg_load_criticality(inp: EvaluationInput) -> float:
    return _mean(
        [
            a.load_criticality if a.load_criticality is not None else DEFAULT_LOAD_CRITICALITY
            for a in inp.assets
        ],
        DEFAULT_LOAD_CRITICALITY,
    )


def life_safety_loads(inp: EvaluationInput) -> List[CriticalLoad]:
    return [load for load in inp.critical_loads if load.type in LIFE_SAFETY_LOAD_TYPES]


def life_safety_load_types(inp: EvaluationInput) -> List[CriticalLoadType]:
    """Distinct life-safety load types in first-seen order."""
    seen: List[CriticalLoadType] = []
    for load in life_safety_loads(inp):
        if load.type not in seen:
            seen.append(load.type)
    return seen


def short_backup_loads(inp: EvaluationInput, hours: float) -> List[CriticalLoad]:
    # loads with no reported backup window are not assumed short
    return [
        load
        for load in inp.critical_loads
        if load.backup_hours_remaining is not None and load.backup_hours_remaining < hours
    ]


def exposed_assets(inp: EvaluationInput, threshold: float) -> List[Asset]:
    """Assets whose vegetation exposure is strictly above ``threshold``, input order."""
    return [
        a
        for a in inp.assets
        if a.vegetation_exposure is not None and a.vegetation_exposure > threshold
    ]


def crews_sufficient(inp: EvaluationInput) -> bool:
    return inp.crews.total >= inp.crews.estimated_crews_needed


__all__ = [
    "DEFAULT_ASSET_AGE_YEARS",
    "DEFAULT_VEGETATION_EXPOSURE",
    "DEFAULT_LOAD_CRITICALITY",
    "LIFE_SAFETY_LOAD_TYPES",
    "avg_asset_age_years",
    "avg_vegetation_exposure",
    "avg_load_criticality",
    "life_safety_loads",
    "life_safety_load_types",
    "short_backup_loads",
    "exposed_assets",
    "crews_sufficient",
]
