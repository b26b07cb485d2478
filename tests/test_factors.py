"""Tests for deterministic factor scoring."""

from datetime import datetime, timedelta

import pytest

from scoring.factors import DeterministicFactorScorer, round_half_up
from scoring.models import (
    EngagementStats,
    FactorSource,
    FinancialStats,
    HealthFactor,
    LeadFactor,
    RawAggregates,
    ScoringSubject,
    SubjectKind,
    TicketStats,
    UsageStats,
)

WINDOW_END = datetime(2025, 6, 30, 12, 0, 0)


@pytest.fixture
def scorer():
    return DeterministicFactorScorer()


def aggregates(**kwargs) -> RawAggregates:
    return RawAggregates(
        subject_id=kwargs.pop("subject_id", "s-1"),
        window_start=WINDOW_END - timedelta(days=30),
        window_end=WINDOW_END,
        **kwargs,
    )


def lead(**kwargs) -> ScoringSubject:
    return ScoringSubject(id="lead-1", kind=SubjectKind.LEAD, **kwargs)


# ── Lead factors ──────────────────────────────────────

class TestLeadFactors:
    @pytest.mark.parametrize("email,expected", [
        ("jo@microsoft.com", 100),
        ("jo@gmail.com", 20),
        ("jo@Yahoo.com", 20),
        ("jo@initech.io", 70),
        (None, 30),
    ])
    def test_company_size(self, scorer, email, expected):
        assert scorer.company_size(lead(email=email)).value == expected

    @pytest.mark.parametrize("title,expected", [
        ("VP of Sales", 100),
        ("Chief Executive / CEO", 100),
        ("Engineering Manager", 70),
        ("Senior Data Analyst", 70),
        ("Software Engineer", 50),
        ("Office Coordinator", 30),
        ("", 30),
        (None, 30),
    ])
    def test_job_title(self, scorer, title, expected):
        assert scorer.job_title(lead(title=title)).value == expected

    @pytest.mark.parametrize("title,expected", [
        ("SVP of Sales", 100),
        ("EVP Operations", 100),
        ("Team Leader", 70),
        ("Software Developers", 50),
        ("Solutions Architects", 50),
    ])
    def test_job_title_matches_inside_words(self, scorer, title, expected):
        assert scorer.job_title(lead(title=title)).value == expected

    def test_engagement_additive(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            sessions=4, page_views=12, form_submissions=1, chat_conversations=0,
        ))
        assert scorer.engagement(agg).value == 80

    def test_engagement_low_tiers(self, scorer):
        agg = aggregates(engagement=EngagementStats(sessions=1, page_views=5))
        assert scorer.engagement(agg).value == 20

    def test_engagement_capped(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            sessions=10, page_views=50, form_submissions=3, chat_conversations=2,
        ))
        assert scorer.engagement(agg).value == 100

    def test_fit_score_full(self, scorer):
        subject = lead(company="Nimbus Cloud", website="https://nimbus.example", source="Demo Request")
        assert scorer.fit_score(subject).value == 100

    def test_fit_score_company_only(self, scorer):
        assert scorer.fit_score(lead(company="Bluth Bananas")).value == 20

    def test_fit_score_empty(self, scorer):
        result = scorer.fit_score(lead())
        assert result.value == 0
        assert result.rationale == "Basic fit"

    def test_intent_signals_each_page_counted_once(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            page_view_urls=("/pricing", "/pricing?plan=pro", "/docs/api", "/blog"),
        ))
        assert scorer.intent_signals(agg).value == 50

    def test_intent_signals_recent_session(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            page_view_urls=("/demo",),
            last_session_at=WINDOW_END - timedelta(days=2),
        ))
        assert scorer.intent_signals(agg).value == 50

    def test_intent_signals_stale_session(self, scorer):
        agg = aggregates(engagement=EngagementStats(last_session_at=WINDOW_END - timedelta(days=8)))
        assert scorer.intent_signals(agg).value == 0

    def test_intent_signals_capped(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            page_view_urls=("/pricing", "/features", "/demo", "/docs"),
            last_session_at=WINDOW_END,
        ))
        assert scorer.intent_signals(agg).value == 100

    def test_score_lead_returns_all_factors(self, scorer):
        factors = scorer.score(lead(email="a@b.com"), aggregates())
        assert set(factors) == set(LeadFactor)
        assert all(f.source == FactorSource.DETERMINISTIC for f in factors.values())
        assert all(f.rationale for f in factors.values())


# ── Health factors ────────────────────────────────────

class TestHealthFactors:
    def test_support_no_tickets(self, scorer):
        assert scorer.support_tickets(TicketStats()).value == 100

    def test_support_penalties(self, scorer):
        tickets = TicketStats(total=6, open=2, high_priority=1, avg_resolution_hours=50)
        assert scorer.support_tickets(tickets).value == 100 - 20 - 10 - 10

    def test_support_penalties_capped(self, scorer):
        tickets = TicketStats(total=20, open=9, high_priority=9, avg_resolution_hours=72)
        assert scorer.support_tickets(tickets).value == 40

    def test_activity_base(self, scorer):
        assert scorer.activity_level(aggregates()).value == 50

    def test_activity_recent_interaction(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            meetings=2, calls=1, last_interaction_at=WINDOW_END - timedelta(days=3),
        ))
        assert scorer.activity_level(agg).value == 50 + 15 + 25

    def test_activity_month_old_interaction(self, scorer):
        agg = aggregates(engagement=EngagementStats(
            meetings=10, last_interaction_at=WINDOW_END - timedelta(days=20),
        ))
        assert scorer.activity_level(agg).value == 50 + 25 + 15

    @pytest.mark.parametrize("monthly,expected", [
        (12000, 100), (10000, 100), (5000, 80), (1000, 60), (999, 40), (500, 40),
    ])
    def test_contract_value_tiers(self, scorer, monthly, expected):
        assert scorer.contract_value(FinancialStats(contract_value=monthly)).value == expected

    def test_contract_value_falls_back_to_annual_revenue(self, scorer):
        assert scorer.contract_value(FinancialStats(annual_revenue=120000)).value == 100

    def test_payment_history(self, scorer):
        assert scorer.payment_history(FinancialStats(late_payments=1, total_payments=8)).value == 88
        assert scorer.payment_history(FinancialStats(late_payments=0, total_payments=12)).value == 100

    def test_payment_history_empty(self, scorer):
        assert scorer.payment_history(FinancialStats()).value == 100

    def test_feature_adoption(self, scorer):
        usage = UsageStats(unique_users=6, total_sessions=120, features_used=5, total_features=20)
        assert scorer.feature_adoption(usage).value == 20 + 30 + 10

    def test_feature_adoption_no_usage(self, scorer):
        assert scorer.feature_adoption(UsageStats()).value == 0

    @pytest.mark.parametrize("months,expected", [
        (36, 100), (24, 100), (12, 80), (6, 60), (3, 40), (2, 20), (0, 20),
    ])
    def test_relationship_length(self, scorer, months, expected):
        assert scorer.relationship_length(months).value == expected

    def test_score_health_returns_all_factors(self, scorer):
        subject = ScoringSubject(id="acct-1", kind=SubjectKind.ACCOUNT)
        factors = scorer.score(subject, aggregates())
        assert set(factors) == set(HealthFactor)


# ── Purity and rounding ───────────────────────────────

class TestPurity:
    def test_identical_input_identical_output(self, scorer):
        subject = lead(email="x@initech.io", title="CTO", company="Initech Digital")
        agg = aggregates(engagement=EngagementStats(sessions=3, page_view_urls=("/pricing",)))
        assert scorer.score(subject, agg) == scorer.score(subject, agg)

    def test_values_in_range(self, scorer):
        agg = aggregates(
            engagement=EngagementStats(sessions=100, page_views=1000, meetings=50, calls=50),
            tickets=TicketStats(total=100, open=100, high_priority=100, avg_resolution_hours=500),
            financial=FinancialStats(contract_value=10 ** 7, late_payments=20, total_payments=20),
            usage=UsageStats(unique_users=500, total_sessions=10 ** 5, features_used=40, total_features=40),
            tenure_months=600,
        )
        subject = ScoringSubject(id="acct-1", kind=SubjectKind.ACCOUNT)
        for factor in scorer.score(subject, agg).values():
            assert 0 <= factor.value <= 100

    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (57.49, 57), (87.5, 88)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected
