from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- Core enums -------------------------------------------------------------

class HazardType(str, Enum):
    STORM = "STORM"
    WILDFIRE = "WILDFIRE"
    RAIN = "RAIN"
    HEAT = "HEAT"
    ICE = "ICE"
    UNKNOWN = "UNKNOWN"


class Phase(str, Enum):
    PRE_EVENT = "PRE_EVENT"
    ACTIVE = "ACTIVE"
    POST_EVENT = "POST_EVENT"
    UNKNOWN = "UNKNOWN"


class CriticalLoadType(str, Enum):
    HOSPITAL = "HOSPITAL"
    WATER = "WATER"
    TELECOM = "TELECOM"
    SHELTER = "SHELTER"
    DATA_CENTER = "DATA_CENTER"
    OTHER = "OTHER"


class ConstraintSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class PolicyGate(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    BLOCK = "BLOCK"


class ActionType(str, Enum):
    DISPATCH_CREWS = "dispatch_crews"
    REROUTE_LOAD = "reroute_load"
    DEENERGIZE_SECTION = "deenergize_section"
    PUBLIC_ADVISORY = "public_advisory"
    REQUEST_MUTUAL_AID = "request_mutual_aid"
    PRIORITIZE_CRITICAL_LOAD = "prioritize_critical_load"
    GENERATE_RESTORATION_PLAN = "generate_restoration_plan"


# canonical catalog order; enum definition order is the source of truth
ACTION_UNIVERSE: tuple[ActionType, ...] = tuple(ActionType)


class EscalationFlag(str, Enum):
    CRITICAL_LOAD_AT_RISK = "critical_load_at_risk"
    CRITICAL_BACKUP_WINDOW_SHORT = "critical_backup_window_short"
    INSUFFICIENT_CREWS = "insufficient_crews"
    TRANSFORMER_THERMAL_STRESS = "transformer_thermal_stress"
    HEAT_LOAD_SPIKE = "heat_load_spike"
    FLOOD_ACCESS_RISK = "flood_access_risk"
    STORM_ACTIVE = "storm_active"
    HIGH_WIND_CONDUCTOR_RISK = "high_wind_conductor_risk"
    ICE_LOAD_RISK = "ice_load_risk"
    VEGETATION_FIRE_RISK = "vegetation_fire_risk"


class EtrBandLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# --- Base model -------------------------------------------------------------

class EngineModel(BaseModel):
    """
    Immutable base for everything the engine builds.

    Python side is snake_case; JSON side is camelCase so payloads match
    what the dashboard sends and renders.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- Normalized input -------------------------------------------------------

class CriticalLoad(EngineModel):
    type: CriticalLoadType
    name: Optional[str] = None
    backup_hours_remaining: Optional[float] = Field(default=None, ge=0.0)


class Asset(EngineModel):
    id: str
    type: str
    age_years: Optional[float] = Field(default=None, ge=0.0, le=120.0)
    vegetation_exposure: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    load_criticality: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class Crews(EngineModel):
    available: int = Field(default=0, ge=0)
    en_route: int = Field(default=0, ge=0)
    estimated_crews_needed: int = Field(default=1, ge=1)
    # False when estimated_crews_needed was derived from customers/severity
    estimate_supplied: bool = False

    @property
    def total(self) -> int:
        return self.available + self.en_route


class DataQuality(EngineModel):
    completeness: float = Field(default=0.5, ge=0.0, le=1.0)
    freshness_minutes: int = Field(default=120, ge=0)
    supplied: bool = False


class EvaluationInput(EngineModel):
    scenario_id: str = "unknown_scenario"
    hazard_type: HazardType = HazardType.UNKNOWN
    phase: Phase = Phase.UNKNOWN
    severity: int = Field(default=3, ge=1, le=5)
    customers_affected: int = Field(default=0, ge=0)
    critical_loads: List[CriticalLoad] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)
    crews: Crews = Field(default_factory=Crews)
    data_quality: DataQuality = Field(default_factory=DataQuality)
    last_updated: Optional[str] = None
    normalization_notes: List[str] = Field(default_factory=list)


# --- Result -----------------------------------------------------------------

class SafetyConstraint(EngineModel):
    id: str
    title: str
    description: str
    severity: ConstraintSeverity
    triggered: bool
    evidence: List[str] = Field(default_factory=list)
    escalation_flags: List[EscalationFlag] = Field(default_factory=list)
    blocked_actions: List[ActionType] = Field(default_factory=list)


class BlockedAction(EngineModel):
    action: ActionType
    reason: str
    remediation: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)


class AllowedAction(EngineModel):
    action: ActionType
    reason: str
    constraints: List[str] = Field(default_factory=list)


class Driver(EngineModel):
    key: str
    value: Union[bool, int, float, str]
    weight: float = Field(..., ge=0.0, le=1.0)


class Explainability(EngineModel):
    drivers: List[Driver] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)
    data_quality_warnings: List[str] = Field(default_factory=list)


class EtrBand(EngineModel):
    band: EtrBandLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: List[str] = Field(default_factory=list)


class ResultMeta(EngineModel):
    deterministic_hash: str
    evaluated_at: str
    engine_version: str
    scenario_id: str
    input_last_updated: Optional[str] = None


class PolicyResult(EngineModel):
    policy_gate: PolicyGate
    allowed_actions: List[AllowedAction] = Field(default_factory=list)
    blocked_actions: List[BlockedAction] = Field(default_factory=list)
    escalation_flags: List[EscalationFlag] = Field(default_factory=list)
    safety_constraints: List[SafetyConstraint] = Field(default_factory=list)
    explainability: Explainability
    etr_band: EtrBand
    meta: ResultMeta


__all__ = [
    "HazardType",
    "Phase",
    "CriticalLoadType",
    "ConstraintSeverity",
    "PolicyGate",
    "ActionType",
    "ACTION_UNIVERSE",
    "EscalationFlag",
    "EtrBandLevel",
    "EngineModel",
    "CriticalLoad",
    "Asset",
    "Crews",
    "DataQuality",
    "EvaluationInput",
    "SafetyConstraint",
    "BlockedAction",
    "AllowedAction",
    "Driver",
    "Explainability",
    "EtrBand",
    "ResultMeta",
    "PolicyResult",
]
