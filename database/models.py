"""
SQLAlchemy ORM models for the CRM scoring engine.

Score history, score alerts and follow-up tasks.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class ScoreSnapshotRecord(Base):
    """One row per scoring run. Rows are never updated."""
    __tablename__ = "score_snapshots"

    id = Column(String(36), primary_key=True, default=_uuid)
    subject_id = Column(String(255), nullable=False)
    subject_kind = Column(String(10), nullable=False)  # lead, account
    profile = Column(String(20), nullable=False)  # lead, health
    overall_score = Column(Integer, nullable=False)
    factors_json = Column(JSON, nullable=False, default=list)
    risk_category = Column(String(10), nullable=False)
    churn_probability = Column(Float, nullable=True)
    recommendations_json = Column(JSON, nullable=False, default=list)
    insights_json = Column(JSON, nullable=False, default=list)
    previous_score = Column(Integer, nullable=True)
    delta = Column(Integer, nullable=True)
    confidence = Column(Float, nullable=False)
    ai_enriched = Column(Boolean, default=False)
    trigger = Column(String(30), default="scheduled")
    model_version = Column(String(64), default="")
    computed_at = Column(DateTime, nullable=False)

    alerts = relationship("AlertRecord", back_populates="snapshot")

    __table_args__ = (
        Index("ix_snapshot_subject_time", "subject_id", "computed_at"),
        Index("ix_snapshot_risk", "risk_category"),
    )


class AlertRecord(Base):
    __tablename__ = "score_alerts"

    id = Column(String(36), primary_key=True, default=_uuid)
    subject_id = Column(String(255), nullable=False, index=True)
    snapshot_id = Column(String(36), ForeignKey("score_snapshots.id"), nullable=False)
    delta = Column(Integer, nullable=False)
    previous_score = Column(Integer, nullable=False)
    overall_score = Column(Integer, nullable=False)
    resolved = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    snapshot = relationship("ScoreSnapshotRecord", back_populates="alerts")


class FollowUpTaskRecord(Base):
    __tablename__ = "follow_up_tasks"

    id = Column(String(36), primary_key=True, default=_uuid)
    subject_id = Column(String(255), nullable=False, index=True)
    owner_id = Column(String(255), nullable=False, index=True)
    message = Column(Text, nullable=False)
    priority = Column(String(10), default="High")  # High, Medium, Low
    status = Column(String(15), default="open")  # open, done
    due_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_task_owner_status", "owner_id", "status"),
    )
