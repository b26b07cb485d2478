"""
Delta alerting: detects sharp score regressions and enqueues follow-ups.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from .models import Alert, ScoreSnapshot, ScoringSubject, SubjectKind

logger = logging.getLogger(__name__)


class TaskPriority(Enum):
    """Follow-up task priorities."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass(frozen=True)
class FollowUpTask:
    """A follow-up task for the subject's owning user."""
    subject_id: str
    owner_id: str
    message: str
    priority: TaskPriority
    due_in_days: int


@runtime_checkable
class TaskSink(Protocol):
    """The owning-user task system."""

    async def create_follow_up_task(
        self,
        subject_id: str,
        owner_id: str,
        message: str,
        priority: TaskPriority,
        due_in_days: int,
    ) -> None:
        ...


class DeltaAlertEmitter:
    """
    Raises an alert when a subject's score drops by at least
    ``drop_threshold`` points since its previous snapshot.

    No alert on first-ever scoring or on improvement.
    """

    def __init__(
        self,
        task_sink: Optional[TaskSink] = None,
        drop_threshold: int = 20,
        due_in_days: int = 2,
    ):
        self.task_sink = task_sink
        self.drop_threshold = drop_threshold
        self.due_in_days = due_in_days

    def evaluate(self, snapshot: ScoreSnapshot) -> Optional[Alert]:
        """Return the alert the snapshot triggers, if any."""
        if snapshot.previous_score is None:
            return None
        drop = snapshot.previous_score - snapshot.overall_score
        if drop < self.drop_threshold:
            return None
        return Alert(
            subject_id=snapshot.subject_id,
            triggering_snapshot_id=snapshot.id,
            delta=snapshot.overall_score - snapshot.previous_score,
            previous_score=snapshot.previous_score,
            overall_score=snapshot.overall_score,
            created_at=snapshot.computed_at,
        )

    def build_task(self, alert: Alert, subject: ScoringSubject) -> Optional[FollowUpTask]:
        if not subject.owner_id:
            return None
        label = "Customer health" if subject.kind == SubjectKind.ACCOUNT else "Lead"
        name = subject.name or subject.id
        message = (
            f"{label} score alert for {name}: score dropped from {alert.previous_score} "
            f"to {alert.overall_score}. Immediate attention required."
        )
        return FollowUpTask(
            subject_id=subject.id,
            owner_id=subject.owner_id,
            message=message,
            priority=TaskPriority.HIGH,
            due_in_days=self.due_in_days,
        )

    async def dispatch(self, alert: Alert, subject: ScoringSubject) -> Optional[FollowUpTask]:
        """
        Enqueue the follow-up task for a persisted alert.

        Args:
            alert: Alert that was written alongside its snapshot
            subject: Subject the alert concerns

        Returns:
            The task sent, or None if there was nobody to send it to
        """
        task = self.build_task(alert, subject)
        if task is None:
            logger.warning(f"Alert {alert.id} for {subject.id} has no owner, no follow-up task created")
            return None
        if self.task_sink is None:
            logger.warning(f"No task sink configured, follow-up for {subject.id} not sent")
            return None

        await self.task_sink.create_follow_up_task(
            subject_id=task.subject_id,
            owner_id=task.owner_id,
            message=task.message,
            priority=task.priority,
            due_in_days=task.due_in_days,
        )
        logger.info(
            f"Follow-up task queued for {subject.id} (owner {task.owner_id}): "
            f"{alert.previous_score} -> {alert.overall_score}"
        )
        return task
