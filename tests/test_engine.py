"""Tests for the scoring pipeline."""

import asyncio
import json
from datetime import timedelta

import pytest

from config.settings import Settings
from conftest import FakeLLM, RecordingTaskSink, health_payload
from database.session import close_db
from database.task_sink import WebhookTaskSink
from scoring.engine import ScoringEngine, build_engine
from scoring.errors import CollectionError, PersistenceError, SubjectNotFoundError
from scoring.models import (
    EngagementStats,
    FinancialStats,
    HealthFactor,
    HealthRisk,
    LeadFactor,
    LeadGrade,
    ScoreTrigger,
    utcnow,
)
from scoring.alerts import TaskPriority


class FlakyStore:
    """Wraps a history store and fails the first ``failures`` appends."""

    def __init__(self, inner, failures: int):
        self.inner = inner
        self.failures = failures
        self.attempts = 0

    async def append(self, snapshot, alert=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise PersistenceError("database is locked", snapshot.subject_id)
        await self.inner.append(snapshot, alert)

    def __getattr__(self, name):
        return getattr(self.inner, name)


def uniform_payload(value: int) -> str:
    return health_payload(factors={f.value: value for f in HealthFactor})


# ── Concrete scenarios ────────────────────────────────

class TestScenarios:
    async def test_health_fallback_scenario(self, crm, account, make_engine):
        crm.add(account, financial=FinancialStats(contract_value=500, late_payments=0, total_payments=12))
        engine = make_engine()

        snap = await engine.score_subject(account.id)

        values = {f.factor: f.value for f in snap.factors}
        assert values == {
            HealthFactor.SUPPORT_TICKETS: 100,
            HealthFactor.ACTIVITY_LEVEL: 50,
            HealthFactor.CONTRACT_VALUE: 40,
            HealthFactor.PAYMENT_HISTORY: 100,
            HealthFactor.FEATURE_ADOPTION: 0,
            HealthFactor.RELATIONSHIP_LENGTH: 20,
        }
        assert snap.overall_score == 58
        assert snap.risk_category == HealthRisk.CRITICAL
        assert snap.confidence <= 0.6
        assert snap.recommendations
        assert snap.churn_probability == 0.4
        assert snap.ai_enriched is False
        assert snap.previous_score is None
        assert snap.delta is None

    async def test_lead_fallback_scenario(self, crm, lead, make_engine):
        crm.add(lead, engagement=EngagementStats(
            sessions=4,
            page_views=12,
            form_submissions=1,
            page_view_urls=("/pricing", "/demo/book"),
            last_session_at=utcnow() - timedelta(days=2),
        ))
        engine = make_engine()

        snap = await engine.score_subject(lead.id)

        values = {f.factor: f.value for f in snap.factors}
        assert values == {
            LeadFactor.COMPANY_SIZE: 20,
            LeadFactor.JOB_TITLE: 100,
            LeadFactor.ENGAGEMENT: 80,
            LeadFactor.FIT_SCORE: 100,
            LeadFactor.INTENT_SIGNALS: 80,
        }
        # 20*.20 + 100*.20 + 80*.25 + 100*.20 + 80*.15
        assert snap.overall_score == 76
        assert snap.risk_category == LeadGrade.B
        assert snap.churn_probability is None
        assert snap.recommendations[0] == "Schedule a demo"

    async def test_regression_raises_one_alert(self, crm, account, make_engine, store, task_sink):
        crm.add(account)
        llm = FakeLLM(response=uniform_payload(85))
        engine = make_engine(llm=llm)

        first = await engine.score_subject(account.id)
        llm.response = uniform_payload(60)
        second = await engine.score_subject(account.id)

        assert first.overall_score == 85
        assert second.overall_score == 60
        assert second.previous_score == 85
        assert second.delta == -25

        alerts = await store.list_recent_alerts(min_drop=20)
        assert len(alerts) == 1
        assert alerts[0].triggering_snapshot_id == second.id

        assert len(task_sink.tasks) == 1
        task = task_sink.tasks[0]
        assert task["owner_id"] == account.owner_id
        assert task["priority"] == TaskPriority.HIGH
        assert task["due_in_days"] == 2


# ── AI enrichment paths ───────────────────────────────

class TestEnrichmentPaths:
    async def test_ai_success_uses_ai_values(self, crm, account, make_engine):
        crm.add(account)
        engine = make_engine(llm=FakeLLM(response=health_payload()))

        snap = await engine.score_subject(account.id)

        assert snap.ai_enriched is True
        assert snap.confidence == 0.85
        assert snap.churn_probability == 0.12
        assert snap.insights == ("Usage is concentrated in one team",)
        assert snap.recommendations == ("[high] Expand to a second team: single-team usage",)
        assert snap.factor_map()[HealthFactor.SUPPORT_TICKETS].value == 90

    async def test_partial_ai_falls_back_per_factor(self, crm, account, make_engine):
        crm.add(account, financial=FinancialStats(contract_value=500, total_payments=12))
        engine = make_engine(llm=FakeLLM(response=health_payload(factors={"feature_adoption": 100})))

        snap = await engine.score_subject(account.id)

        factors = snap.factor_map()
        assert factors[HealthFactor.FEATURE_ADOPTION].value == 100
        assert factors[HealthFactor.CONTRACT_VALUE].value == 40
        assert snap.overall_score == 58 + 15

    async def test_ai_without_recommendations_uses_rules(self, crm, account, make_engine):
        crm.add(account)
        engine = make_engine(llm=FakeLLM(response=health_payload(recommendations=[])))
        snap = await engine.score_subject(account.id)
        assert snap.recommendations

    async def test_timeout_takes_fallback_path(self, crm, account, make_engine):
        crm.add(account, financial=FinancialStats(contract_value=500, total_payments=12))
        engine = make_engine(llm=FakeLLM(error=asyncio.TimeoutError()))

        snap = await engine.score_subject(account.id)

        assert snap.ai_enriched is False
        assert snap.confidence <= 0.6
        assert snap.overall_score == 58
        assert snap.recommendations

    async def test_malformed_takes_fallback_path(self, crm, account, make_engine):
        crm.add(account)
        engine = make_engine(llm=FakeLLM(response="not json at all"))
        snap = await engine.score_subject(account.id)
        assert snap.ai_enriched is False
        assert snap.confidence <= 0.6


# ── Errors ────────────────────────────────────────────

class TestEngineErrors:
    async def test_unknown_subject(self, make_engine):
        with pytest.raises(SubjectNotFoundError):
            await make_engine().score_subject("nope")

    async def test_collection_failure(self, crm, account, make_engine, store):
        crm.add(account)
        crm.fail(account.id, "tickets")

        with pytest.raises(CollectionError) as exc:
            await make_engine().score_subject(account.id)

        assert exc.value.source == "tickets"
        assert await store.get_history(account.id) == []

    async def test_persistence_retried_once(self, crm, account, make_engine, store):
        crm.add(account)
        flaky = FlakyStore(store, failures=1)

        snap = await make_engine(history=flaky).score_subject(account.id)

        assert flaky.attempts == 2
        assert (await store.get_latest_by_subject(account.id)).id == snap.id

    async def test_persistence_gives_up_after_retry(self, crm, account, make_engine, store):
        crm.add(account)
        flaky = FlakyStore(store, failures=2)

        with pytest.raises(PersistenceError):
            await make_engine(history=flaky).score_subject(account.id)

        assert flaky.attempts == 2
        assert await store.get_history(account.id) == []

    async def test_task_failure_keeps_snapshot(self, crm, account, make_engine, store):
        crm.add(account)
        llm = FakeLLM(response=uniform_payload(90))
        engine = make_engine(llm=llm, sink=RecordingTaskSink(error=ConnectionError("CRM down")))

        await engine.score_subject(account.id)
        llm.response = uniform_payload(40)
        snap = await engine.score_subject(account.id)

        assert (await store.get_latest_by_subject(account.id)).id == snap.id
        assert len(await store.list_recent_alerts()) == 1


# ── Ordering and metadata ─────────────────────────────

class TestSnapshotOrdering:
    async def test_computed_at_increases(self, crm, account, make_engine):
        crm.add(account)
        engine = make_engine()
        first = await engine.score_subject(account.id)
        second = await engine.score_subject(account.id)
        assert second.computed_at > first.computed_at
        assert second.delta == 0

    async def test_same_subject_runs_serialized(self, crm, account, make_engine, store):
        crm.add(account)
        engine = make_engine()

        results = await asyncio.gather(*(engine.score_subject(account.id) for _ in range(3)))

        assert sum(1 for s in results if s.previous_score is None) == 1
        assert len(await store.get_history(account.id)) == 3

    async def test_trigger_and_version_recorded(self, crm, account, make_engine):
        crm.add(account)
        snap = await make_engine().score_subject(account.id, ScoreTrigger.SUPPORT_TICKET)
        assert snap.trigger == ScoreTrigger.SUPPORT_TICKET
        assert snap.model_version == "test"


# ── Wiring ────────────────────────────────────────────

class TestFromSettings:
    def test_builds_from_settings(self, crm, store):
        settings = Settings(
            ai_enrichment_enabled=False,
            alert_drop_threshold=15,
            scoring_window_days=14,
            scoring_model_version="2.1",
        )
        engine = ScoringEngine.from_settings(
            settings, subjects=crm, history=store,
            engagement=crm, tickets=crm, financial=crm, usage=crm,
        )
        assert engine.alerts.drop_threshold == 15
        assert engine.collector.window_days == 14
        assert engine.model_version == "2.1"
        assert engine.enrichment.enabled is False

    async def test_injected_provider(self, crm, account, store):
        crm.add(account)
        settings = Settings(ai_enrichment_enabled=True)
        engine = ScoringEngine.from_settings(
            settings, subjects=crm, history=store,
            engagement=crm, tickets=crm, financial=crm, usage=crm,
            provider=FakeLLM(response=json.dumps({"factors": {}, "confidence": 0.9})),
        )
        snap = await engine.score_subject(account.id)
        assert snap.ai_enriched is True
        assert snap.confidence == 0.9

    def test_webhook_sink_from_settings(self, crm, store):
        settings = Settings(
            ai_enrichment_enabled=False,
            task_webhook_url="http://crm.local/tasks",
            task_webhook_api_key="crm-key",
        )
        engine = ScoringEngine.from_settings(settings, subjects=crm, history=store, engagement=crm)
        sink = engine.alerts.task_sink
        assert isinstance(sink, WebhookTaskSink)
        assert sink.webhook_url == "http://crm.local/tasks"
        assert sink.api_key == "crm-key"

    def test_explicit_sink_wins_over_webhook(self, crm, store, task_sink):
        settings = Settings(ai_enrichment_enabled=False, task_webhook_url="http://crm.local/tasks")
        engine = ScoringEngine.from_settings(
            settings, subjects=crm, history=store, engagement=crm, task_sink=task_sink,
        )
        assert engine.alerts.task_sink is task_sink

    def test_no_webhook_no_sink(self, crm, store):
        engine = ScoringEngine.from_settings(
            Settings(ai_enrichment_enabled=False, task_webhook_url=None),
            subjects=crm, history=store, engagement=crm,
        )
        assert engine.alerts.task_sink is None

    async def test_build_engine_opens_database(self, crm, account, tmp_path):
        crm.add(account)
        settings = Settings(ai_enrichment_enabled=False, database_url=f"sqlite:///{tmp_path / 'crm.db'}")
        try:
            engine = await build_engine(
                settings, subjects=crm, engagement=crm, tickets=crm, financial=crm, usage=crm,
            )
            snap = await engine.score_subject(account.id)
            assert await engine.history.get_latest_by_subject(account.id) == snap
        finally:
            await close_db()

    async def test_build_engine_requires_database(self, crm):
        with pytest.raises(ValueError, match="DATABASE_URL"):
            await build_engine(Settings(ai_enrichment_enabled=False, database_url=None), subjects=crm, engagement=crm)
