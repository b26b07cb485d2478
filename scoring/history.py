"""
History store interface.

Snapshots are append-only. An alert is always written in the same
transaction as the snapshot that triggered it.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable

from .models import Alert, RiskCategory, ScoreSnapshot


@runtime_checkable
class HistoryStore(Protocol):
    """Persistence and query surface for score snapshots and alerts."""

    async def append(self, snapshot: ScoreSnapshot, alert: Optional[Alert] = None) -> None:
        """Persist a snapshot and its alert atomically. Raises PersistenceError."""
        ...

    async def get_history(self, subject_id: str, limit: int = 50) -> List[ScoreSnapshot]:
        """Snapshots for a subject, newest first."""
        ...

    async def get_latest_by_subject(self, subject_id: str) -> Optional[ScoreSnapshot]:
        ...

    async def list_by_risk_category(self, category: RiskCategory, limit: int = 50) -> List[ScoreSnapshot]:
        """Latest snapshot of each subject currently in ``category``, highest churn first."""
        ...

    async def list_recent_alerts(
        self,
        min_drop: int = 10,
        since: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[Alert]:
        ...

    async def risk_distribution(self, profile: str) -> Dict[str, int]:
        ...

    async def resolve_alert(self, alert_id: str) -> bool:
        ...
