"""
Repository classes for the scoring data access layer.

Each repository encapsulates the queries for a specific model.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AlertRecord, FollowUpTaskRecord, ScoreSnapshotRecord

logger = logging.getLogger(__name__)


class SnapshotRepository:
    """Data access for score snapshots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, record: ScoreSnapshotRecord) -> ScoreSnapshotRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_latest(self, subject_id: str) -> Optional[ScoreSnapshotRecord]:
        result = await self.session.execute(
            select(ScoreSnapshotRecord)
            .where(ScoreSnapshotRecord.subject_id == subject_id)
            .order_by(ScoreSnapshotRecord.computed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_history(self, subject_id: str, limit: int = 50) -> List[ScoreSnapshotRecord]:
        result = await self.session.execute(
            select(ScoreSnapshotRecord)
            .where(ScoreSnapshotRecord.subject_id == subject_id)
            .order_by(ScoreSnapshotRecord.computed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def _latest_per_subject(self):
        latest = (
            select(
                ScoreSnapshotRecord.subject_id,
                func.max(ScoreSnapshotRecord.computed_at).label("latest_at"),
            )
            .group_by(ScoreSnapshotRecord.subject_id)
            .subquery()
        )
        return select(ScoreSnapshotRecord).join(
            latest,
            (ScoreSnapshotRecord.subject_id == latest.c.subject_id)
            & (ScoreSnapshotRecord.computed_at == latest.c.latest_at),
        )

    async def list_by_risk_category(self, category: str, limit: int = 50) -> List[ScoreSnapshotRecord]:
        """Current snapshots in a category, highest churn probability first."""
        result = await self.session.execute(
            self._latest_per_subject()
            .where(ScoreSnapshotRecord.risk_category == category)
            .order_by(
                ScoreSnapshotRecord.churn_probability.desc().nulls_last(),
                ScoreSnapshotRecord.overall_score.asc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_risk_category(self, profile: str) -> Dict[str, int]:
        current = self._latest_per_subject().where(ScoreSnapshotRecord.profile == profile).subquery()
        result = await self.session.execute(
            select(current.c.risk_category, func.count()).group_by(current.c.risk_category)
        )
        return {category: count for category, count in result.all()}


class AlertRepository:
    """Data access for score alerts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, record: AlertRecord) -> AlertRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_recent(
        self,
        min_drop: int = 10,
        since: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[AlertRecord]:
        q = (
            select(AlertRecord)
            .where(AlertRecord.delta <= -min_drop)
            .order_by(AlertRecord.created_at.desc())
            .limit(limit)
        )
        if since:
            q = q.where(AlertRecord.created_at >= since)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def resolve(self, alert_id: str) -> bool:
        result = await self.session.execute(
            update(AlertRecord)
            .where(AlertRecord.id == alert_id)
            .values(resolved=True)
        )
        await self.session.flush()
        return result.rowcount > 0


class FollowUpTaskRepository:
    """Data access for follow-up tasks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> FollowUpTaskRecord:
        task = FollowUpTaskRecord(**kwargs)
        self.session.add(task)
        await self.session.flush()
        return task

    async def list_open(self, owner_id: Optional[str] = None, limit: int = 50) -> List[FollowUpTaskRecord]:
        q = (
            select(FollowUpTaskRecord)
            .where(FollowUpTaskRecord.status == "open")
            .order_by(FollowUpTaskRecord.due_at.asc())
            .limit(limit)
        )
        if owner_id:
            q = q.where(FollowUpTaskRecord.owner_id == owner_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())
