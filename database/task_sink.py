"""
Follow-up task sinks.

Deliver alert follow-up tasks to the owning user's task system, either
through a CRM webhook or the local follow_up_tasks table.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scoring.alerts import TaskPriority
from scoring.models import utcnow

from .repositories import FollowUpTaskRepository
from .session import transaction

logger = logging.getLogger(__name__)


class WebhookTaskSink:
    """
    Posts follow-up tasks to a CRM webhook.

    Failed deliveries are retried with a growing delay and then raised.
    """

    def __init__(
        self,
        webhook_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._client = client

    async def create_follow_up_task(
        self,
        subject_id: str,
        owner_id: str,
        message: str,
        priority: TaskPriority,
        due_in_days: int,
    ) -> None:
        payload = {
            "subject_id": subject_id,
            "assigned_to": owner_id,
            "title": "Score alert follow-up",
            "description": message,
            "priority": priority.value,
            "due_date": (utcnow() + timedelta(days=due_in_days)).date().isoformat(),
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        for attempt in range(self.max_retries):
            try:
                await self._post(payload, headers)
                logger.info(f"Follow-up task delivered for {subject_id} to {owner_id}")
                return
            except httpx.HTTPError as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"Follow-up task delivery failed for {subject_id}: {e}")
                    raise
                logger.info(f"Retrying follow-up task delivery for {subject_id} (attempt {attempt + 1})")
                await asyncio.sleep(self.retry_delay * (attempt + 1))

    async def _post(self, payload: dict, headers: dict):
        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return
        async with httpx.AsyncClient() as client:
            response = await client.post(self.webhook_url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()


class DbTaskSink:
    """Writes follow-up tasks to the follow_up_tasks table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    async def create_follow_up_task(
        self,
        subject_id: str,
        owner_id: str,
        message: str,
        priority: TaskPriority,
        due_in_days: int,
    ) -> None:
        async with transaction(self._session_factory) as session:
            task = await FollowUpTaskRepository(session).create(
                subject_id=subject_id,
                owner_id=owner_id,
                message=message,
                priority=priority.value,
                due_at=utcnow() + timedelta(days=due_in_days),
            )
        logger.info(f"Follow-up task {task.id} created for {owner_id}")
