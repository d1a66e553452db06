from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.auth import require_api_key
from api.db import get_db
from api.db_models import DecisionLogRecord
from api.decision_log import append_entry
from api.schemas import (
    DecisionLogCreate,
    DecisionLogDetail,
    DecisionLogItem,
    DecisionLogPage,
    DecisionSource,
)

router = APIRouter(
    prefix="/decisions",
    tags=["decisions"],
    dependencies=[Depends(require_api_key)],
)

MAX_PAGE_SIZE = 100


def _load(blob: Optional[str]) -> Any:
    if not blob:
        return None
    try:
        return json.loads(blob)
    except ValueError:
        return None


def _item(r: DecisionLogRecord) -> DecisionLogItem:
    return DecisionLogItem(
        id=r.id,
        event_id=r.event_id,
        timestamp=r.timestamp,
        source=r.source,
        trigger=r.trigger,
        action_taken=r.action_taken,
        rule_impact=r.rule_impact,
        policy_gate=r.policy_gate,
        engine_version=r.engine_version,
        deterministic_hash=r.deterministic_hash,
    )


def _detail(r: DecisionLogRecord) -> DecisionLogDetail:
    meta = _load(r.metadata_json)
    return DecisionLogDetail(
        **_item(r).model_dump(),
        metadata=meta if isinstance(meta, dict) else {},
        response=_load(r.response_json),
        prev_hash=r.prev_hash,
        chain_hash=r.chain_hash,
    )


@router.get("", response_model=DecisionLogPage)
def list_decisions(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    event_id: Optional[str] = Query(None),
    source: Optional[DecisionSource] = Query(None),
) -> DecisionLogPage:
    """Paginated decision log, newest first. No response blobs."""
    q = db.query(DecisionLogRecord)
    if event_id:
        q = q.filter(DecisionLogRecord.event_id == event_id)
    if source is not None:
        q = q.filter(DecisionLogRecord.source == source.value)

    total = q.with_entities(func.count(DecisionLogRecord.id)).scalar() or 0

    rows = (
        q.order_by(DecisionLogRecord.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return DecisionLogPage(
        items=[_item(r) for r in rows],
        total=int(total),
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=DecisionLogDetail, status_code=status.HTTP_201_CREATED)
def create_decision(
    entry: DecisionLogCreate,
    db: Session = Depends(get_db),
) -> DecisionLogDetail:
    if entry.source is DecisionSource.RULE_ENGINE:
        # Rule Engine rows are written by /evaluate only
        raise HTTPException(status_code=422, detail="source 'Rule Engine' is reserved for evaluations")
    return _detail(append_entry(db, entry))


@router.get("/{decision_id}", response_model=DecisionLogDetail)
def get_decision(
    decision_id: int,
    db: Session = Depends(get_db),
) -> DecisionLogDetail:
    rec = db.query(DecisionLogRecord).filter(DecisionLogRecord.id == decision_id).one_or_none()
    if rec is None:
        raise HTTPException(status_code=404, detail="Decision not found")
    return _detail(rec)
