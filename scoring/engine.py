"""
Scoring pipeline.

collect -> deterministic factors + AI enrichment (best effort) -> aggregate
-> classify -> delta alert -> append to history.
"""

import asyncio
import logging
import weakref
from datetime import timedelta
from typing import Dict, Mapping, Optional, Tuple

from config.settings import Settings
from database.history_store import SqlHistoryStore
from database.session import init_db
from database.task_sink import WebhookTaskSink
from llm.enrichment import AIEnrichment, AIEnrichmentAdapter, EnrichmentResult, Unavailable, UnavailableReason
from llm.providers import LLMProvider, build_provider
from llm.rate_limit import ProviderRateLimiter

from .aggregator import ScoreAggregator, merge_factors
from .alerts import DeltaAlertEmitter, TaskSink
from .classifier import RiskClassifier
from .collector import (
    EngagementStatsProvider,
    FactorCollector,
    FinancialStatsProvider,
    SubjectProvider,
    TicketStatsProvider,
    UsageStatsProvider,
)
from .errors import AggregationError, CollectionError, PersistenceError, SubjectNotFoundError
from .factors import DeterministicFactorScorer
from .history import HistoryStore
from .models import Alert, ScoreSnapshot, ScoreTrigger, ScoringSubject, SubjectKind, utcnow
from .profiles import DEFAULT_PROFILES, ScoringProfile
from .recommendations import RecommendationRules

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_CONFIDENCE = 0.6


class ScoringEngine:
    """
    Runs the scoring pipeline for one subject at a time.

    Runs for the same subject are serialized so each one reads the
    snapshot written by the run before it. Profiles are validated here,
    so a misweighted profile stops the engine from being built at all.
    """

    def __init__(
        self,
        subjects: SubjectProvider,
        collector: FactorCollector,
        history: HistoryStore,
        enrichment: Optional[AIEnrichmentAdapter] = None,
        profiles: Optional[Mapping[SubjectKind, ScoringProfile]] = None,
        scorer: Optional[DeterministicFactorScorer] = None,
        aggregator: Optional[ScoreAggregator] = None,
        classifier: Optional[RiskClassifier] = None,
        recommender: Optional[RecommendationRules] = None,
        alerts: Optional[DeltaAlertEmitter] = None,
        fallback_confidence_ceiling: float = DEFAULT_FALLBACK_CONFIDENCE,
        model_version: str = "",
        persistence_retries: int = 1,
    ):
        self.profiles: Dict[SubjectKind, ScoringProfile] = dict(profiles or DEFAULT_PROFILES)
        for profile in self.profiles.values():
            profile.validate()

        self.subjects = subjects
        self.collector = collector
        self.history = history
        self.enrichment = enrichment
        self.scorer = scorer or DeterministicFactorScorer()
        self.aggregator = aggregator or ScoreAggregator()
        self.classifier = classifier or RiskClassifier()
        self.recommender = recommender or RecommendationRules()
        self.alerts = alerts or DeltaAlertEmitter()
        self.fallback_confidence_ceiling = fallback_confidence_ceiling
        self.model_version = model_version
        self.persistence_retries = max(0, persistence_retries)

        # Entries disappear once no run holds the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        subjects: SubjectProvider,
        history: HistoryStore,
        engagement: EngagementStatsProvider,
        tickets: Optional[TicketStatsProvider] = None,
        financial: Optional[FinancialStatsProvider] = None,
        usage: Optional[UsageStatsProvider] = None,
        task_sink: Optional[TaskSink] = None,
        provider: Optional[LLMProvider] = None,
        profiles: Optional[Mapping[SubjectKind, ScoringProfile]] = None,
    ) -> "ScoringEngine":
        """
        Wire an engine from settings.

        Settings are read once here; the engine never consults them
        during a run.
        """
        if provider is None and settings.ai_enrichment_enabled:
            provider = build_provider(settings)
        if task_sink is None and settings.task_webhook_url:
            task_sink = WebhookTaskSink(settings.task_webhook_url, api_key=settings.task_webhook_api_key)

        enrichment = AIEnrichmentAdapter(
            provider=provider,
            rate_limiter=ProviderRateLimiter(
                requests_per_window=settings.ai_requests_per_minute,
                max_concurrency=settings.ai_max_concurrency,
            ),
            default_scale=settings.ai_factor_scale,
            enabled=settings.ai_enrichment_enabled,
        )
        collector = FactorCollector(
            engagement=engagement,
            tickets=tickets,
            financial=financial,
            usage=usage,
            window_days=settings.scoring_window_days,
        )
        alerts = DeltaAlertEmitter(
            task_sink=task_sink,
            drop_threshold=settings.alert_drop_threshold,
            due_in_days=settings.alert_due_in_days,
        )
        return cls(
            subjects=subjects,
            collector=collector,
            history=history,
            enrichment=enrichment,
            profiles=profiles,
            alerts=alerts,
            fallback_confidence_ceiling=settings.fallback_confidence_ceiling,
            model_version=settings.scoring_model_version,
            persistence_retries=settings.persistence_retries,
        )

    def profile_for(self, subject: ScoringSubject) -> ScoringProfile:
        try:
            return self.profiles[subject.kind]
        except KeyError:
            raise AggregationError(f"No scoring profile for {subject.kind.value} subjects", subject.id)

    async def score_subject(
        self,
        subject_id: str,
        trigger: ScoreTrigger = ScoreTrigger.SCHEDULED,
    ) -> ScoreSnapshot:
        """
        Load a subject and score it.

        Raises:
            SubjectNotFoundError: If the subject provider doesn't know the id
            CollectionError: If the subject or its aggregates can't be loaded
            PersistenceError: If the snapshot can't be written after retrying
        """
        try:
            subject = await self.subjects.get_subject(subject_id)
        except CollectionError:
            raise
        except Exception as e:
            raise CollectionError(f"Failed to load subject: {e}", subject_id, "subjects") from e

        if subject is None:
            raise SubjectNotFoundError(f"Subject {subject_id} not found", subject_id, "subjects")
        return await self.score(subject, trigger)

    async def score(
        self,
        subject: ScoringSubject,
        trigger: ScoreTrigger = ScoreTrigger.SCHEDULED,
    ) -> ScoreSnapshot:
        """
        Run the full pipeline for one subject.

        Args:
            subject: Subject to score
            trigger: Why the run was requested

        Returns:
            The persisted snapshot
        """
        profile = self.profile_for(subject)

        lock = self._lock_for(subject.id)
        async with lock:
            snapshot, alert = await self._run(profile, subject, trigger)

        if alert is not None:
            await self._notify(alert, subject)
        return snapshot

    def _lock_for(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[subject_id] = lock
        return lock

    async def _run(
        self,
        profile: ScoringProfile,
        subject: ScoringSubject,
        trigger: ScoreTrigger,
    ) -> Tuple[ScoreSnapshot, Optional[Alert]]:
        aggregates = await self.collector.collect(subject)
        deterministic = self.scorer.score(subject, aggregates)
        enrichment = await self._enrich(profile, subject, aggregates)

        if isinstance(enrichment, AIEnrichment):
            factors = merge_factors(deterministic, enrichment.factors)
        else:
            logger.warning(
                f"AI enrichment unavailable for {subject.id} ({enrichment.reason.value}), "
                f"using deterministic factors"
            )
            factors = merge_factors(deterministic)

        overall = self.aggregator.aggregate(profile, factors)
        category = self.classifier.classify(profile, overall)
        static_recommendations = tuple(self.recommender.recommend(profile, overall, category, factors))

        if isinstance(enrichment, AIEnrichment):
            churn = self.classifier.resolve_churn(profile, overall, factors, enrichment.churn_probability)
            recommendations = enrichment.recommendations or static_recommendations
            insights = enrichment.insights
            confidence = enrichment.confidence
        else:
            churn = self.classifier.resolve_churn(profile, overall, factors)
            recommendations = static_recommendations
            insights = ()
            confidence = self.fallback_confidence_ceiling

        previous = await self.history.get_latest_by_subject(subject.id)
        computed_at = utcnow()
        previous_score = None
        delta = None
        if previous is not None:
            previous_score = previous.overall_score
            delta = overall - previous.overall_score
            # Keep computed_at strictly increasing per subject
            if computed_at <= previous.computed_at:
                computed_at = previous.computed_at + timedelta(microseconds=1)

        snapshot = ScoreSnapshot(
            subject_id=subject.id,
            profile=profile.name,
            overall_score=overall,
            factors=tuple(factors[key] for key in profile.factors if key in factors),
            risk_category=category,
            confidence=confidence,
            computed_at=computed_at,
            churn_probability=churn,
            recommendations=recommendations,
            insights=insights,
            previous_score=previous_score,
            delta=delta,
            ai_enriched=isinstance(enrichment, AIEnrichment),
            trigger=trigger,
            model_version=self.model_version,
        )
        alert = self.alerts.evaluate(snapshot)

        await self._persist(snapshot, alert)
        logger.info(
            f"Scored {subject.kind.value} {subject.id}: {overall} ({category.value}), "
            f"delta={delta}, ai_enriched={snapshot.ai_enriched}"
        )
        return snapshot, alert

    async def _enrich(self, profile, subject, aggregates) -> EnrichmentResult:
        if self.enrichment is None:
            return Unavailable(UnavailableReason.DISABLED, "No enrichment adapter configured")
        return await self.enrichment.enrich(profile, subject, aggregates)

    async def _persist(self, snapshot: ScoreSnapshot, alert: Optional[Alert]):
        attempts = self.persistence_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.history.append(snapshot, alert)
                return
            except PersistenceError as e:
                if attempt == attempts:
                    logger.error(f"Giving up persisting snapshot for {snapshot.subject_id}: {e}")
                    raise
                logger.warning(
                    f"Persisting snapshot for {snapshot.subject_id} failed "
                    f"(attempt {attempt}/{attempts}), retrying: {e}"
                )

    async def _notify(self, alert: Alert, subject: ScoringSubject):
        logger.info(
            f"Score alert for {subject.id}: {alert.previous_score} -> {alert.overall_score} "
            f"(delta {alert.delta})"
        )
        try:
            await self.alerts.dispatch(alert, subject)
        except Exception as e:
            # The snapshot and alert are already committed
            logger.error(f"Failed to create follow-up task for alert {alert.id}: {e}")


async def build_engine(settings: Settings, **collaborators) -> ScoringEngine:
    """
    Wire an engine from settings, opening the score database when needed.

    Without an explicit ``history`` the snapshots go to a SqlHistoryStore on
    DATABASE_URL.
    """
    if collaborators.get("history") is None:
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required when no history store is given")
        session_factory = await init_db(settings.database_url)
        collaborators["history"] = SqlHistoryStore(session_factory)
    return ScoringEngine.from_settings(settings, **collaborators)
