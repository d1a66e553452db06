from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from safety_engine.types import (
    Asset,
    CriticalLoad,
    CriticalLoadType,
    Crews,
    DataQuality,
    EvaluationInput,
    HazardType,
    Phase,
)

# Raw descriptive labels (dashboard outage types, lifecycle stages) keyed by
# their lookup form: lowercased, "-"/"_" folded to spaces, whitespace collapsed.
HAZARD_LOOKUP: Dict[str, HazardType] = {
    "storm": HazardType.STORM,
    "lightning": HazardType.STORM,
    "high wind": HazardType.STORM,
    "snow storm": HazardType.STORM,
    "wildfire": HazardType.WILDFIRE,
    "vegetation": HazardType.WILDFIRE,
    "flood": HazardType.RAIN,
    "heavy rain": HazardType.RAIN,
    "rain": HazardType.RAIN,
    "heatwave": HazardType.HEAT,
    "heat wave": HazardType.HEAT,
    "heat": HazardType.HEAT,
    "ice/snow": HazardType.ICE,
    "ice": HazardType.ICE,
    "ice storm": HazardType.ICE,
    "equipment failure": HazardType.UNKNOWN,
    "unknown": HazardType.UNKNOWN,
}

PHASE_LOOKUP: Dict[str, Phase] = {
    "pre event": Phase.PRE_EVENT,
    "event": Phase.ACTIVE,
    "active": Phase.ACTIVE,
    "post event": Phase.POST_EVENT,
    "unknown": Phase.UNKNOWN,
}

CRITICAL_LOAD_LOOKUP: Dict[str, CriticalLoadType] = {
    "hospital": CriticalLoadType.HOSPITAL,
    "water": CriticalLoadType.WATER,
    "water treatment": CriticalLoadType.WATER,
    "wastewater": CriticalLoadType.WATER,
    "telecom": CriticalLoadType.TELECOM,
    "telecommunications": CriticalLoadType.TELECOM,
    "shelter": CriticalLoadType.SHELTER,
    "data center": CriticalLoadType.DATA_CENTER,
    "datacenter": CriticalLoadType.DATA_CENTER,
    "other": CriticalLoadType.OTHER,
}

DEFAULT_SEVERITY = 3
DEFAULT_COMPLETENESS = 0.5
DEFAULT_FRESHNESS_MINUTES = 120
MAX_ASSET_AGE_YEARS = 120.0
CUSTOMERS_PER_CREW = 1500
CREWS_PER_SEVERITY_POINT = 1.2


# --------------------------------------------------------------------------------------
# Coercion helpers
# --------------------------------------------------------------------------------------


def _as_dict(x: Any) -> Dict[str, Any]:
    if x is None:
        return {}
    if isinstance(x, dict):
        return x
    if hasattr(x, "model_dump"):
        try:
            return x.model_dump()
        except Exception:
            return {}
    return {}


def _pick(d: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = d.get(k)
        if v is not None:
            return v
    return None


def _utf8_safe(s: str) -> str:
    # json.loads accepts lone surrogate escapes; they cannot be encoded
    return s.encode("utf-8", "replace").decode("utf-8")


def _opt_str(
    v: Any, *, label: Optional[str] = None, notes: Optional[List[str]] = None
) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, Enum):
        v = v.value
    raw = str(v)
    clean = _utf8_safe(raw)
    if clean != raw and label is not None and notes is not None:
        notes.append(f"{label} contained text that is not valid UTF-8; replaced with '?'.")
    s = clean.strip()
    return s or None


def _norm_str(
    v: Any, default: str, *, label: Optional[str] = None, notes: Optional[List[str]] = None
) -> str:
    return _opt_str(v, label=label, notes=notes) or default


def _lookup_key(v: Any) -> str:
    s = _opt_str(v) or ""
    s = s.lower().replace("_", " ").replace("-", " ")
    return " ".join(s.split())


def _finite_float(v: Any) -> Optional[float]:
    # bools are ints in python; a flag is never a measurement
    if v is None or isinstance(v, bool):
        return None
    try:
        if isinstance(v, (int, float)):
            f = float(v)
        else:
            s = str(v).strip()
            if not s:
                return None
            f = float(s)
    except (ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def _round_half_up(f: float) -> int:
    return int(math.floor(f + 0.5))


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _count(v: Any) -> int:
    f = _finite_float(v)
    if f is None:
        return 0
    return max(0, _round_half_up(f))


def _as_list(v: Any, label: str, notes: List[str]) -> Sequence[Any]:
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return v
    notes.append(f"{label} was not a list; ignored.")
    return []


def _parse_iso(s: str) -> Optional[datetime]:
    v = s.strip()
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(v)
    except ValueError:
        return None


# --------------------------------------------------------------------------------------
# Field normalizers
# --------------------------------------------------------------------------------------


def map_hazard(raw: Any) -> HazardType:
    return HAZARD_LOOKUP.get(_lookup_key(raw), HazardType.UNKNOWN)


def map_phase(raw: Any) -> Phase:
    return PHASE_LOOKUP.get(_lookup_key(raw), Phase.UNKNOWN)


def derive_crews_needed(customers_affected: int, severity: int) -> int:
    customer_factor = max(0, math.ceil(customers_affected / CUSTOMERS_PER_CREW))
    severity_factor = max(1, math.ceil(severity * CREWS_PER_SEVERITY_POINT))
    return max(1, customer_factor + severity_factor)


def _clamped(
    raw: Any, *, label: str, notes: List[str], lo: float = 0.0, hi: float = 1.0
) -> Optional[float]:
    f = _finite_float(raw)
    if f is None:
        return None
    c = _clamp(f, lo, hi)
    if c != f:
        notes.append(f"{label} {f:.2f} clamped to [{lo:g}, {hi:g}].")
    return c


def _normalize_critical_loads(raw: Any, notes: List[str]) -> List[CriticalLoad]:
    loads: List[CriticalLoad] = []
    for idx, item in enumerate(_as_list(raw, "criticalLoads", notes)):
        # dashboard sometimes sends bare type labels
        d = {"type": item} if isinstance(item, str) else _as_dict(item)
        if not d:
            notes.append(f"criticalLoads[{idx}] is not an object; dropped.")
            continue

        raw_type = _pick(d, "type", "loadType", "load_type")
        load_type = CRITICAL_LOAD_LOOKUP.get(_lookup_key(raw_type))
        if load_type is None:
            load_type = CriticalLoadType.OTHER
            if raw_type is None:
                notes.append(f"criticalLoads[{idx}] has no type; defaulted to OTHER.")
            else:
                notes.append(f"criticalLoads[{idx}] type '{_opt_str(raw_type)}' folded to OTHER.")

        hours = _finite_float(_pick(d, "backupHoursRemaining", "backup_hours_remaining"))
        if hours is not None and hours < 0:
            notes.append(f"criticalLoads[{idx}] backupHoursRemaining {hours:.1f} floored at 0.")
            hours = 0.0

        loads.append(
            CriticalLoad(
                type=load_type,
                name=_opt_str(_pick(d, "name"), label=f"criticalLoads[{idx}].name", notes=notes),
                backup_hours_remaining=hours,
            )
        )
    return loads


def _normalize_assets(raw: Any, notes: List[str]) -> List[Asset]:
    assets: List[Asset] = []
    for idx, item in enumerate(_as_list(raw, "assets", notes)):
        d = _as_dict(item)
        asset_id = _opt_str(_pick(d, "id", "assetId", "asset_id"), label=f"assets[{idx}].id", notes=notes)
        if asset_id is None:
            notes.append(f"assets[{idx}] has no id; dropped.")
            continue

        label = f"Asset {asset_id}"
        assets.append(
            Asset(
                id=asset_id,
                type=_norm_str(
                    _pick(d, "type", "assetType", "asset_type"),
                    "unknown",
                    label=f"assets[{idx}].type",
                    notes=notes,
                ),
                age_years=_clamped(
                    _pick(d, "ageYears", "age_years"),
                    label=f"{label} ageYears",
                    notes=notes,
                    hi=MAX_ASSET_AGE_YEARS,
                ),
                vegetation_exposure=_clamped(
                    _pick(d, "vegetationExposure", "vegetation_exposure"),
                    label=f"{label} vegetationExposure",
                    notes=notes,
                ),
                load_criticality=_clamped(
                    _pick(d, "loadCriticality", "load_criticality"),
                    label=f"{label} loadCriticality",
                    notes=notes,
                ),
            )
        )
    return assets


def _normalize_crews(
    data: Dict[str, Any], customers_affected: int, severity: int, notes: List[str]
) -> Crews:
    raw = _pick(data, "crews")
    d = _as_dict(raw)
    if not d:
        notes.append("Crew object missing; defaulted crew counts to 0.")

    needed_raw = _finite_float(_pick(d, "estimatedCrewsNeeded", "estimated_crews_needed"))
    if needed_raw is None:
        needed_raw = _finite_float(_pick(data, "estimatedCrewsNeeded", "estimated_crews_needed"))

    if needed_raw is None:
        needed = derive_crews_needed(customers_affected, severity)
        supplied = False
    else:
        needed = max(1, _round_half_up(needed_raw))
        supplied = True

    return Crews(
        available=_count(_pick(d, "available")),
        en_route=_count(_pick(d, "enRoute", "en_route")),
        estimated_crews_needed=needed,
        estimate_supplied=supplied,
    )


def _normalize_data_quality(raw: Any, notes: List[str]) -> DataQuality:
    d = _as_dict(raw)
    if not d:
        notes.append("Data quality missing; using conservative defaults.")
        return DataQuality(
            completeness=DEFAULT_COMPLETENESS,
            freshness_minutes=DEFAULT_FRESHNESS_MINUTES,
            supplied=False,
        )

    completeness = _clamped(
        _pick(d, "completeness"), label="dataQuality.completeness", notes=notes
    )
    if completeness is None:
        notes.append(f"dataQuality.completeness missing; defaulted to {DEFAULT_COMPLETENESS:.2f}.")
        completeness = DEFAULT_COMPLETENESS

    freshness_raw = _finite_float(_pick(d, "freshnessMinutes", "freshness_minutes"))
    if freshness_raw is None:
        notes.append(f"dataQuality.freshnessMinutes missing; defaulted to {DEFAULT_FRESHNESS_MINUTES}.")
        freshness = DEFAULT_FRESHNESS_MINUTES
    else:
        freshness = max(0, _round_half_up(freshness_raw))

    return DataQuality(completeness=completeness, freshness_minutes=freshness, supplied=True)


# --------------------------------------------------------------------------------------
# Entry point
# --------------------------------------------------------------------------------------


def normalize_scenario(raw: Any) -> EvaluationInput:
    """
    Fold a loosely-typed evaluation request into a canonical EvaluationInput.

    Never raises. Unknown enum labels fold to UNKNOWN, numerics are clamped,
    and every default or fold applied is recorded in ``normalization_notes``
    (those notes are part of the normalized input, so they are hashed too).
    """
    notes: List[str] = []
    data = _as_dict(raw)
    if raw is not None and not isinstance(raw, dict) and not data:
        notes.append("Evaluation request was not an object; evaluated with defaults.")

    raw_hazard = _pick(data, "hazardType", "hazard_type", "outageType", "outage_type")
    hazard = map_hazard(raw_hazard)
    if raw_hazard is None:
        notes.append("Missing hazardType; defaulted to UNKNOWN.")
    elif _lookup_key(raw_hazard) not in HAZARD_LOOKUP:
        notes.append(f"Unmapped hazardType '{_opt_str(raw_hazard)}' normalized to UNKNOWN.")

    raw_phase = _pick(data, "phase", "lifecycleStage", "lifecycle_stage")
    phase = map_phase(raw_phase)
    if raw_phase is None:
        notes.append("Missing phase; defaulted to UNKNOWN.")
    elif _lookup_key(raw_phase) not in PHASE_LOOKUP:
        notes.append(f"Unmapped phase '{_opt_str(raw_phase)}' normalized to UNKNOWN.")

    sev_raw = _finite_float(_pick(data, "severity"))
    if sev_raw is None:
        notes.append(f"Missing severity; defaulted to {DEFAULT_SEVERITY}.")
        severity = DEFAULT_SEVERITY
    else:
        severity = int(_clamp(_round_half_up(sev_raw), 1, 5))
        if severity != sev_raw:
            notes.append(f"Severity {sev_raw:g} normalized to {severity}.")

    cust_raw = _finite_float(
        _pick(data, "customersAffected", "customers_affected", "customers_impacted")
    )
    if cust_raw is None:
        notes.append("Missing customersAffected; defaulted to 0.")
        customers = 0
    else:
        customers = max(0, _round_half_up(cust_raw))

    critical_loads = _normalize_critical_loads(
        _pick(data, "criticalLoads", "critical_loads"), notes
    )

    raw_assets = _pick(data, "assets")
    assets = _normalize_assets(raw_assets, notes)
    if not assets:
        notes.append("No assets provided.")

    crews = _normalize_crews(data, customers, severity, notes)
    data_quality = _normalize_data_quality(_pick(data, "dataQuality", "data_quality"), notes)

    last_updated: Optional[str] = None
    raw_last = _opt_str(_pick(data, "lastUpdated", "last_updated"), label="lastUpdated", notes=notes)
    if raw_last is not None:
        if _parse_iso(raw_last) is not None:
            last_updated = raw_last
        else:
            notes.append("Invalid lastUpdated value ignored; expected ISO timestamp.")

    return EvaluationInput(
        scenario_id=_norm_str(
            _pick(data, "scenarioId", "scenario_id"),
            "unknown_scenario",
            label="scenarioId",
            notes=notes,
        ),
        hazard_type=hazard,
        phase=phase,
        severity=severity,
        customers_affected=customers,
        critical_loads=critical_loads,
        assets=assets,
        crews=crews,
        data_quality=data_quality,
        last_updated=last_updated,
        normalization_notes=notes,
    )


__all__ = [
    "HAZARD_LOOKUP",
    "PHASE_LOOKUP",
    "CRITICAL_LOAD_LOOKUP",
    "map_hazard",
    "map_phase",
    "derive_crews_needed",
    "normalize_scenario",
]
