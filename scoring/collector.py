"""
Factor collection: read-only fan-out over the upstream data providers.

Providers are narrow async protocols keyed by subject id and a time window,
so the CRM can back them with SQL queries, HTTP calls or fixtures.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Dict, Optional, Protocol, runtime_checkable

from .errors import CollectionError
from .models import (
    EngagementStats,
    FinancialStats,
    RawAggregates,
    ScoringSubject,
    SubjectKind,
    TicketStats,
    UsageStats,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30


@runtime_checkable
class SubjectProvider(Protocol):
    """Resolves subject ids to subject records."""

    async def get_subject(self, subject_id: str) -> Optional[ScoringSubject]:
        ...


@runtime_checkable
class TicketStatsProvider(Protocol):
    async def ticket_stats(self, subject_id: str, since: datetime, until: datetime) -> TicketStats:
        ...


@runtime_checkable
class EngagementStatsProvider(Protocol):
    async def engagement_stats(self, subject_id: str, since: datetime, until: datetime) -> EngagementStats:
        ...


@runtime_checkable
class FinancialStatsProvider(Protocol):
    async def financial_stats(self, subject_id: str, since: datetime, until: datetime) -> FinancialStats:
        ...


@runtime_checkable
class UsageStatsProvider(Protocol):
    async def usage_stats(self, subject_id: str, since: datetime, until: datetime) -> UsageStats:
        ...


def months_between(start: Optional[datetime], end: datetime) -> int:
    """Whole calendar months from start to end, 0 when start is unknown."""
    if start is None:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


class FactorCollector:
    """
    Gathers raw aggregates for a subject.

    Leads need engagement data only; accounts need every provider.
    Any provider failure aborts collection for that subject with a
    CollectionError naming the failing source.
    """

    def __init__(
        self,
        engagement: EngagementStatsProvider,
        tickets: Optional[TicketStatsProvider] = None,
        financial: Optional[FinancialStatsProvider] = None,
        usage: Optional[UsageStatsProvider] = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ):
        self.engagement = engagement
        self.tickets = tickets
        self.financial = financial
        self.usage = usage
        self.window_days = window_days

    async def collect(
        self,
        subject: ScoringSubject,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> RawAggregates:
        """
        Collect the aggregates the subject's profile needs.

        Args:
            subject: Subject to collect for
            window_days: Override of the trailing window length
            now: Window end (defaults to current UTC time)

        Returns:
            RawAggregates for the window

        Raises:
            CollectionError: If any required upstream query fails
        """
        until = now or utcnow()
        since = until - timedelta(days=window_days or self.window_days)

        queries: Dict[str, Awaitable[Any]] = {
            "engagement": self.engagement.engagement_stats(subject.id, since, until),
        }
        if subject.kind == SubjectKind.ACCOUNT:
            for source, provider, method in (
                ("tickets", self.tickets, "ticket_stats"),
                ("financial", self.financial, "financial_stats"),
                ("usage", self.usage, "usage_stats"),
            ):
                if provider is None:
                    self._close(queries)
                    raise CollectionError(
                        f"No {source} provider configured",
                        subject_id=subject.id,
                        source=source,
                    )
                queries[source] = getattr(provider, method)(subject.id, since, until)

        names = list(queries.keys())
        results = await asyncio.gather(*queries.values(), return_exceptions=True)
        collected = dict(zip(names, results))

        for source, result in collected.items():
            if isinstance(result, BaseException):
                logger.error(f"Collection failed for {subject.id} ({source}): {result}")
                raise CollectionError(
                    f"{source} query failed: {result}",
                    subject_id=subject.id,
                    source=source,
                ) from result

        self._check_type(subject.id, "engagement", collected["engagement"], EngagementStats)
        if subject.kind == SubjectKind.ACCOUNT:
            self._check_type(subject.id, "tickets", collected["tickets"], TicketStats)
            self._check_type(subject.id, "financial", collected["financial"], FinancialStats)
            self._check_type(subject.id, "usage", collected["usage"], UsageStats)

        return RawAggregates(
            subject_id=subject.id,
            window_start=since,
            window_end=until,
            engagement=collected["engagement"],
            tickets=collected.get("tickets"),
            financial=collected.get("financial"),
            usage=collected.get("usage"),
            tenure_months=months_between(subject.created_at, until),
        )

    @staticmethod
    def _check_type(subject_id: str, source: str, value: Any, expected: type):
        if not isinstance(value, expected):
            raise CollectionError(
                f"{source} provider returned {type(value).__name__}, expected {expected.__name__}",
                subject_id=subject_id,
                source=source,
            )

    @staticmethod
    def _close(queries: Dict[str, Awaitable[Any]]):
        # Coroutines created but never awaited
        for query in queries.values():
            close = getattr(query, "close", None)
            if close:
                close()
