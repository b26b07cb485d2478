"""Shared fixtures for scoring engine tests."""

import json
import os
from datetime import timedelta
from typing import Dict, List, Optional, Set

import pytest

# Ensure we use test/mock settings
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("AI_ENRICHMENT_ENABLED", "false")

from database import SqlHistoryStore, close_db, init_db  # noqa: E402
from llm.enrichment import AIEnrichmentAdapter  # noqa: E402
from scoring.alerts import DeltaAlertEmitter  # noqa: E402
from scoring.collector import FactorCollector  # noqa: E402
from scoring.engine import ScoringEngine  # noqa: E402
from scoring.models import (  # noqa: E402
    EngagementStats,
    FinancialStats,
    ScoringSubject,
    SubjectKind,
    TicketStats,
    UsageStats,
    utcnow,
)


class FakeCRM:
    """In-memory subject and statistics provider."""

    def __init__(self):
        self.subjects: Dict[str, ScoringSubject] = {}
        self.engagement: Dict[str, EngagementStats] = {}
        self.tickets: Dict[str, TicketStats] = {}
        self.financial: Dict[str, FinancialStats] = {}
        self.usage: Dict[str, UsageStats] = {}
        self.failing: Dict[str, Set[str]] = {}

    def add(self, subject, engagement=None, tickets=None, financial=None, usage=None):
        self.subjects[subject.id] = subject
        self.engagement[subject.id] = engagement or EngagementStats()
        self.tickets[subject.id] = tickets or TicketStats()
        self.financial[subject.id] = financial or FinancialStats()
        self.usage[subject.id] = usage or UsageStats()
        return subject

    def fail(self, subject_id: str, source: str):
        self.failing.setdefault(source, set()).add(subject_id)

    def _check(self, source: str, subject_id: str):
        if subject_id in self.failing.get(source, set()):
            raise ConnectionError(f"{source} service unreachable")

    async def get_subject(self, subject_id):
        return self.subjects.get(subject_id)

    async def engagement_stats(self, subject_id, since, until):
        self._check("engagement", subject_id)
        return self.engagement[subject_id]

    async def ticket_stats(self, subject_id, since, until):
        self._check("tickets", subject_id)
        return self.tickets[subject_id]

    async def financial_stats(self, subject_id, since, until):
        self._check("financial", subject_id)
        return self.financial[subject_id]

    async def usage_stats(self, subject_id, since, until):
        self._check("usage", subject_id)
        return self.usage[subject_id]


class FakeLLM:
    """LLM provider returning canned responses or raising."""

    def __init__(self, response: Optional[str] = None, error: Optional[BaseException] = None):
        self.response = response
        self.error = error
        self.calls: List[dict] = []

    async def agenerate(self, prompt, system=None, json_mode=False, max_tokens=None, temperature=None):
        self.calls.append({"prompt": prompt, "system": system, "json_mode": json_mode})
        if self.error is not None:
            raise self.error
        return self.response


class RecordingTaskSink:
    def __init__(self, error: Optional[BaseException] = None):
        self.tasks: List[dict] = []
        self.error = error

    async def create_follow_up_task(self, subject_id, owner_id, message, priority, due_in_days):
        if self.error is not None:
            raise self.error
        self.tasks.append({
            "subject_id": subject_id,
            "owner_id": owner_id,
            "message": message,
            "priority": priority,
            "due_in_days": due_in_days,
        })


def health_payload(**overrides) -> str:
    payload = {
        "factors": {
            "support_tickets": 90,
            "activity_level": 80,
            "contract_value": 70,
            "payment_history": 100,
            "feature_adoption": 60,
            "relationship_length": 80,
        },
        "insights": ["Usage is concentrated in one team"],
        "recommendations": [
            {"priority": "high", "action": "Expand to a second team", "reason": "single-team usage"}
        ],
        "churn_probability": 0.12,
        "confidence": 0.85,
        "scale": 100,
    }
    payload.update(overrides)
    return json.dumps(payload)


# ── Subjects ──────────────────────────────────────────

@pytest.fixture
def account():
    """Scenario account: new customer, no activity, small contract."""
    return ScoringSubject(
        id="acct-1",
        kind=SubjectKind.ACCOUNT,
        name="Globex Corp",
        owner_id="user-7",
        industry="Manufacturing",
        created_at=utcnow() - timedelta(days=65),
    )


@pytest.fixture
def lead():
    return ScoringSubject(
        id="lead-1",
        kind=SubjectKind.LEAD,
        name="Dana Whitfield",
        owner_id="user-3",
        email="dana@gmail.com",
        title="VP of Sales",
        company="Acme Cloud Software",
        website="https://acme.example",
        source="Webinar",
    )


@pytest.fixture
def crm():
    return FakeCRM()


@pytest.fixture
def task_sink():
    return RecordingTaskSink()


# ── Persistence ───────────────────────────────────────

@pytest.fixture
async def session_factory(tmp_path):
    factory = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'scores.db'}")
    yield factory
    await close_db()


@pytest.fixture
async def store(session_factory):
    return SqlHistoryStore(session_factory)


# ── Engine ────────────────────────────────────────────

@pytest.fixture
def make_engine(crm, store, task_sink):
    """Build an engine over the fake CRM; pass an LLM to enable enrichment."""

    def _make(llm=None, history=None, sink=task_sink, **kwargs):
        enrichment = AIEnrichmentAdapter(provider=llm, enabled=llm is not None)
        return ScoringEngine(
            subjects=crm,
            collector=FactorCollector(
                engagement=crm, tickets=crm, financial=crm, usage=crm
            ),
            history=history or store,
            enrichment=enrichment,
            alerts=DeltaAlertEmitter(task_sink=sink),
            model_version="test",
            **kwargs,
        )

    return _make
