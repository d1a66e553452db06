"""
Evidence sentence rendering.

Templates are plain ``str.format`` strings. Every value is formatted here,
up front, with fixed precision (hours 1dp, ratios 2dp, counts as ints) so the
same input always renders byte-identical text. Nothing in this module may read
the clock, the locale or the environment.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from safety_engine import facts
from safety_engine.types import Asset, CriticalLoad, EvaluationInput

Entity = Union[CriticalLoad, Asset]


def fmt_hours(v: Optional[float]) -> str:
    return "n/a" if v is None else f"{v:.1f}"


def fmt_ratio(v: Optional[float]) -> str:
    return "n/a" if v is None else f"{v:.2f}"


def fmt_count(v: int) -> str:
    return str(int(v))


def load_label(load: CriticalLoad) -> str:
    return f"{load.type.value} ({load.name})" if load.name else load.type.value


def scenario_context(inp: EvaluationInput) -> Dict[str, str]:
    """Scenario-level placeholders shared by every template."""
    life_safety = facts.life_safety_load_types(inp)
    return {
        "scenario_id": inp.scenario_id,
        "hazard": inp.hazard_type.value,
        "phase": inp.phase.value,
        "severity": fmt_count(inp.severity),
        "customers_affected": fmt_count(inp.customers_affected),
        "crews_available": fmt_count(inp.crews.available),
        "crews_en_route": fmt_count(inp.crews.en_route),
        "crews_total": fmt_count(inp.crews.total),
        "crews_needed": fmt_count(inp.crews.estimated_crews_needed),
        "avg_load_criticality": fmt_ratio(facts.avg_load_criticality(inp)),
        "life_safety_load_types": ", ".join(t.value for t in life_safety) or "none",
    }


def item_context(item: Optional[Entity]) -> Dict[str, str]:
    if item is None:
        return {}
    if isinstance(item, CriticalLoad):
        return {
            "load_type": item.type.value,
            "load_name": item.name or "",
            "load_label": load_label(item),
            "backup_hours": fmt_hours(item.backup_hours_remaining),
        }
    if isinstance(item, Asset):
        return {
            "asset_id": item.id,
            "asset_type": item.type,
            "age_years": fmt_hours(item.age_years),
            "vegetation_exposure": fmt_ratio(item.vegetation_exposure),
            "load_criticality": fmt_ratio(item.load_criticality),
        }
    raise TypeError(f"unsupported evidence entity: {type(item).__name__}")


def render(
    template: str,
    scenario_ctx: Mapping[str, str],
    item: Optional[Entity] = None,
    **extra: Any,
) -> str:
    """
    Render one evidence sentence.

    A placeholder the context does not provide raises KeyError: that is a
    broken template, not bad input.
    """
    ctx: Dict[str, Any] = dict(scenario_ctx)
    ctx.update(item_context(item))
    ctx.update({k: str(v) for k, v in extra.items()})
    return template.format_map(ctx)


__all__ = [
    "fmt_hours",
    "fmt_ratio",
    "fmt_count",
    "load_label",
    "scenario_context",
    "item_context",
    "render",
]
