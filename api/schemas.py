# api/schemas.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EvaluationRequest(BaseModel):
    """
    Wire shape of POST /evaluate.

    Deliberately loose: every field is optional and untyped so a partial or
    malformed snapshot still reaches the normalizer, which records what it
    had to default.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    scenario_id: Any = None
    hazard_type: Any = None
    phase: Any = None
    severity: Any = None
    customers_affected: Any = None
    critical_loads: Any = None
    assets: Any = None
    crews: Any = None
    estimated_crews_needed: Any = None
    data_quality: Any = None
    last_updated: Any = None

    def to_raw(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DecisionSource(str, Enum):
    WEATHER_API = "Weather API"
    RULE_ENGINE = "Rule Engine"
    COPILOT = "Copilot"
    OPERATOR = "Operator"


class DecisionLogCreate(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=128)
    source: DecisionSource = DecisionSource.OPERATOR
    trigger: str = Field(..., min_length=1)
    action_taken: str = Field(..., min_length=1)
    rule_impact: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DecisionLogItem(BaseModel):
    id: int
    event_id: str
    timestamp: Optional[datetime] = None
    source: str
    trigger: str
    action_taken: str
    rule_impact: Optional[str] = None
    policy_gate: Optional[str] = None
    engine_version: Optional[str] = None
    deterministic_hash: Optional[str] = None


class DecisionLogDetail(DecisionLogItem):
    metadata: Dict[str, Any] = Field(default_factory=dict)
    response: Optional[Dict[str, Any]] = None
    prev_hash: Optional[str] = None
    chain_hash: Optional[str] = None


class DecisionLogPage(BaseModel):
    items: List[DecisionLogItem]
    total: int
    page: int
    page_size: int
