# api/db_models.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class DecisionLogRecord(Base):
    """
    Append-only decision log row.

    Rows are never updated; each one carries the hash of the previous row so
    the log is tamper-evident.
    """

    __tablename__ = "event_decision_log"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(128), nullable=False, index=True)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # "Weather API" | "Rule Engine" | "Copilot" | "Operator"
    source = Column(String(32), nullable=False, index=True)
    trigger = Column(Text, nullable=False)
    action_taken = Column(Text, nullable=False)
    rule_impact = Column(Text, nullable=True)

    policy_gate = Column(String(8), nullable=True, index=True)
    engine_version = Column(String(32), nullable=True)
    deterministic_hash = Column(String(64), nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_json = Column(Text, nullable=True)
    response_json = Column(Text, nullable=True)

    # one successor per row; a second writer linking to the same tail fails
    prev_hash = Column(String(64), nullable=True, unique=True)
    chain_hash = Column(String(64), nullable=True)
