"""
SQL-backed history store.

Maps ScoreSnapshot/Alert to ORM records and back. A snapshot and the
alert it triggers are written in one transaction.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scoring.errors import PersistenceError
from scoring.models import (
    Alert,
    FactorScore,
    FactorSource,
    HealthFactor,
    HealthRisk,
    LeadFactor,
    LeadGrade,
    RiskCategory,
    ScoreSnapshot,
    ScoreTrigger,
    SubjectKind,
)

from .models import AlertRecord, ScoreSnapshotRecord
from .repositories import AlertRepository, SnapshotRepository
from .session import get_session_factory, transaction

logger = logging.getLogger(__name__)


def _kind_of(category: RiskCategory) -> SubjectKind:
    return SubjectKind.LEAD if isinstance(category, LeadGrade) else SubjectKind.ACCOUNT


def snapshot_to_record(snapshot: ScoreSnapshot) -> ScoreSnapshotRecord:
    return ScoreSnapshotRecord(
        id=snapshot.id,
        subject_id=snapshot.subject_id,
        subject_kind=_kind_of(snapshot.risk_category).value,
        profile=snapshot.profile,
        overall_score=snapshot.overall_score,
        factors_json=[f.to_dict() for f in snapshot.factors],
        risk_category=snapshot.risk_category.value,
        churn_probability=snapshot.churn_probability,
        recommendations_json=list(snapshot.recommendations),
        insights_json=list(snapshot.insights),
        previous_score=snapshot.previous_score,
        delta=snapshot.delta,
        confidence=snapshot.confidence,
        ai_enriched=snapshot.ai_enriched,
        trigger=snapshot.trigger.value,
        model_version=snapshot.model_version,
        computed_at=snapshot.computed_at,
    )


def record_to_snapshot(record: ScoreSnapshotRecord) -> ScoreSnapshot:
    if record.subject_kind == SubjectKind.LEAD.value:
        factor_type, category_type = LeadFactor, LeadGrade
    else:
        factor_type, category_type = HealthFactor, HealthRisk

    factors = tuple(
        FactorScore(
            factor=factor_type(item["factor"]),
            value=int(item["value"]),
            rationale=item.get("rationale", ""),
            source=FactorSource(item.get("source", FactorSource.DETERMINISTIC.value)),
        )
        for item in record.factors_json or []
    )
    return ScoreSnapshot(
        id=record.id,
        subject_id=record.subject_id,
        profile=record.profile,
        overall_score=record.overall_score,
        factors=factors,
        risk_category=category_type(record.risk_category),
        confidence=record.confidence,
        computed_at=record.computed_at,
        churn_probability=record.churn_probability,
        recommendations=tuple(record.recommendations_json or ()),
        insights=tuple(record.insights_json or ()),
        previous_score=record.previous_score,
        delta=record.delta,
        ai_enriched=bool(record.ai_enriched),
        trigger=ScoreTrigger(record.trigger),
        model_version=record.model_version or "",
    )


def alert_to_record(alert: Alert) -> AlertRecord:
    return AlertRecord(
        id=alert.id,
        subject_id=alert.subject_id,
        snapshot_id=alert.triggering_snapshot_id,
        delta=alert.delta,
        previous_score=alert.previous_score,
        overall_score=alert.overall_score,
        resolved=alert.resolved,
        created_at=alert.created_at,
    )


def record_to_alert(record: AlertRecord) -> Alert:
    return Alert(
        id=record.id,
        subject_id=record.subject_id,
        triggering_snapshot_id=record.snapshot_id,
        delta=record.delta,
        previous_score=record.previous_score,
        overall_score=record.overall_score,
        resolved=bool(record.resolved),
        created_at=record.created_at,
    )


class SqlHistoryStore:
    """
    HistoryStore on SQLAlchemy async sessions.

    Every database error is rolled back and re-raised as PersistenceError.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def append(self, snapshot: ScoreSnapshot, alert: Optional[Alert] = None) -> None:
        """
        Persist a snapshot and, if given, the alert it triggered.

        Raises:
            PersistenceError: If the write fails; nothing is left behind
        """
        try:
            async with transaction(self.session_factory) as session:
                await SnapshotRepository(session).add(snapshot_to_record(snapshot))
                if alert is not None:
                    await AlertRepository(session).add(alert_to_record(alert))
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to persist snapshot {snapshot.id}: {e}", snapshot.subject_id
            ) from e
        logger.debug(f"Persisted snapshot {snapshot.id} for {snapshot.subject_id}")

    async def get_history(self, subject_id: str, limit: int = 50) -> List[ScoreSnapshot]:
        try:
            async with self.session_factory() as session:
                records = await SnapshotRepository(session).get_history(subject_id, limit)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read history: {e}", subject_id) from e
        return [record_to_snapshot(r) for r in records]

    async def get_latest_by_subject(self, subject_id: str) -> Optional[ScoreSnapshot]:
        try:
            async with self.session_factory() as session:
                record = await SnapshotRepository(session).get_latest(subject_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read latest snapshot: {e}", subject_id) from e
        return record_to_snapshot(record) if record else None

    async def list_by_risk_category(self, category: RiskCategory, limit: int = 50) -> List[ScoreSnapshot]:
        try:
            async with self.session_factory() as session:
                records = await SnapshotRepository(session).list_by_risk_category(
                    category.value, limit
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list {category.value} snapshots: {e}") from e
        kind = _kind_of(category).value
        return [record_to_snapshot(r) for r in records if r.subject_kind == kind]

    async def list_recent_alerts(
        self,
        min_drop: int = 10,
        since: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[Alert]:
        """Alerts whose score dropped by at least ``min_drop``, newest first."""
        try:
            async with self.session_factory() as session:
                records = await AlertRepository(session).list_recent(min_drop, since, limit)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list alerts: {e}") from e
        return [record_to_alert(r) for r in records]

    async def risk_distribution(self, profile: str) -> Dict[str, int]:
        """Number of subjects per risk category, from each subject's latest snapshot."""
        try:
            async with self.session_factory() as session:
                return await SnapshotRepository(session).count_by_risk_category(profile)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to compute risk distribution: {e}") from e

    async def resolve_alert(self, alert_id: str) -> bool:
        try:
            async with transaction(self.session_factory) as session:
                resolved = await AlertRepository(session).resolve(alert_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to resolve alert {alert_id}: {e}") from e
        if not resolved:
            logger.warning(f"Alert {alert_id} not found")
        return resolved
