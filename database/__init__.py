"""
Persistence for the CRM scoring engine.
"""

from .history_store import SqlHistoryStore
from .models import AlertRecord, Base, FollowUpTaskRecord, ScoreSnapshotRecord
from .session import close_db, get_session_factory, init_db, transaction
from .task_sink import DbTaskSink, WebhookTaskSink

__all__ = [
    "SqlHistoryStore",
    "AlertRecord",
    "Base",
    "FollowUpTaskRecord",
    "ScoreSnapshotRecord",
    "close_db",
    "get_session_factory",
    "init_db",
    "transaction",
    "DbTaskSink",
    "WebhookTaskSink",
]
