"""
Deterministic factor scoring.

Pure functions from subject attributes and raw aggregates to 0-100
sub-scores. No I/O, no clock: "recent" is measured against the end of
the aggregation window.
"""

import logging
import math
import re
from typing import Dict, List

from .models import (
    FactorKey,
    FactorScore,
    FactorSource,
    HealthFactor,
    LeadFactor,
    RawAggregates,
    ScoringSubject,
    SubjectKind,
    TicketStats,
    UsageStats,
    FinancialStats,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> int:
    return max(0, min(100, int(value)))


class DeterministicFactorScorer:
    """
    Scores the lead and health factor sets.

    Lead factors:
    - company_size: enterprise domain 100, free-mail 20, corporate 70, no email 30
    - job_title: decision maker 100, influencer 70, technical 50, other 30
    - engagement: sessions, page views, forms and chats (additive, cap 100)
    - fit_score: industry keyword, company, website, high-intent source
    - intent_signals: pricing/features/demo/docs page views + recent session

    Health factors:
    - support_tickets, activity_level, contract_value, payment_history,
      feature_adoption, relationship_length
    """

    ENTERPRISE_DOMAINS = frozenset({"microsoft.com", "google.com", "amazon.com", "apple.com"})
    FREE_MAIL_DOMAINS = frozenset({"gmail.com", "yahoo.com", "hotmail.com", "outlook.com"})

    # Substring matches, so "SVP", "Team Leader" and plurals count
    DECISION_MAKER_TITLES = re.compile(
        r"(ceo|cto|cfo|president|owner|founder|vp|vice president|director)", re.I
    )
    INFLUENCER_TITLES = re.compile(r"(manager|head|lead|senior|principal)", re.I)
    TECHNICAL_TITLES = re.compile(r"(engineer|developer|architect|analyst)", re.I)

    INDUSTRY_KEYWORDS = re.compile(r"(software|tech|saas|cloud|digital)", re.I)
    HIGH_INTENT_SOURCES = frozenset({"Demo Request", "Contact Form", "Webinar"})

    # URL keyword -> (points, signal label); each keyword counts once
    INTENT_PAGES = {
        "/pricing": (30, "Viewed pricing"),
        "/features": (20, "Viewed features"),
        "/demo": (30, "Viewed demo page"),
        "/docs": (20, "Viewed documentation"),
    }
    RECENT_SESSION_DAYS = 7
    RECENT_SESSION_POINTS = 20

    def score(self, subject: ScoringSubject, aggregates: RawAggregates) -> Dict[FactorKey, FactorScore]:
        """Score every factor of the subject's profile."""
        if subject.kind == SubjectKind.LEAD:
            return self.score_lead(subject, aggregates)
        return self.score_health(aggregates)

    # ── Lead profile ──────────────────────────────────

    def score_lead(self, subject: ScoringSubject, aggregates: RawAggregates) -> Dict[FactorKey, FactorScore]:
        factors = [
            self.company_size(subject),
            self.job_title(subject),
            self.engagement(aggregates),
            self.fit_score(subject),
            self.intent_signals(aggregates),
        ]
        return {f.factor: f for f in factors}

    def company_size(self, subject: ScoringSubject) -> FactorScore:
        domain = subject.email_domain
        if not domain:
            return self._lead(LeadFactor.COMPANY_SIZE, 30, "No email provided")
        if domain in self.ENTERPRISE_DOMAINS:
            return self._lead(LeadFactor.COMPANY_SIZE, 100, "Enterprise company")
        if domain in self.FREE_MAIL_DOMAINS:
            return self._lead(LeadFactor.COMPANY_SIZE, 20, "Free email provider")
        return self._lead(LeadFactor.COMPANY_SIZE, 70, "Corporate email domain")

    def job_title(self, subject: ScoringSubject) -> FactorScore:
        title = (subject.title or "").strip()
        if not title:
            return self._lead(LeadFactor.JOB_TITLE, 30, "No title provided")
        if self.DECISION_MAKER_TITLES.search(title):
            return self._lead(LeadFactor.JOB_TITLE, 100, "Decision maker")
        if self.INFLUENCER_TITLES.search(title):
            return self._lead(LeadFactor.JOB_TITLE, 70, "Influencer")
        if self.TECHNICAL_TITLES.search(title):
            return self._lead(LeadFactor.JOB_TITLE, 50, "Technical role")
        return self._lead(LeadFactor.JOB_TITLE, 30, "Other role")

    def engagement(self, aggregates: RawAggregates) -> FactorScore:
        e = aggregates.engagement
        score = 0

        # Multiple sessions = high interest
        if e.sessions >= 3:
            score += 30
        elif e.sessions >= 1:
            score += 10

        # Page views indicate research
        if e.page_views >= 10:
            score += 20
        elif e.page_views >= 5:
            score += 10

        if e.form_submissions > 0:
            score += 30

        if e.chat_conversations > 0:
            score += 20

        rationale = (
            f"{e.sessions} sessions, {e.page_views} page views, "
            f"{e.form_submissions} forms, {e.chat_conversations} chats"
        )
        return self._lead(LeadFactor.ENGAGEMENT, min(score, 100), rationale)

    def fit_score(self, subject: ScoringSubject) -> FactorScore:
        score = 0
        reasons: List[str] = []

        if subject.company and self.INDUSTRY_KEYWORDS.search(subject.company):
            score += 40
            reasons.append("Tech industry")

        if subject.company:
            score += 20
            reasons.append("Company identified")

        if subject.website:
            score += 20
            reasons.append("Website provided")

        if subject.source in self.HIGH_INTENT_SOURCES:
            score += 20
            reasons.append("High-intent source")

        return self._lead(LeadFactor.FIT_SCORE, min(score, 100), ", ".join(reasons) or "Basic fit")

    def intent_signals(self, aggregates: RawAggregates) -> FactorScore:
        e = aggregates.engagement
        score = 0
        signals: List[str] = []

        urls = [u.lower() for u in e.page_view_urls]
        for keyword, (points, label) in self.INTENT_PAGES.items():
            if any(keyword in url for url in urls):
                score += points
                signals.append(label)

        if e.last_session_at is not None:
            age = aggregates.window_end - e.last_session_at
            if age.total_seconds() < self.RECENT_SESSION_DAYS * 86400:
                score += self.RECENT_SESSION_POINTS
                signals.append("Recent activity")

        return self._lead(
            LeadFactor.INTENT_SIGNALS, min(score, 100), ", ".join(signals) or "No strong signals"
        )

    # ── Health profile ────────────────────────────────

    def score_health(self, aggregates: RawAggregates) -> Dict[FactorKey, FactorScore]:
        factors = [
            self.support_tickets(aggregates.tickets or TicketStats()),
            self.activity_level(aggregates),
            self.contract_value(aggregates.financial or FinancialStats()),
            self.payment_history(aggregates.financial or FinancialStats()),
            self.feature_adoption(aggregates.usage or UsageStats()),
            self.relationship_length(aggregates.tenure_months),
        ]
        return {f.factor: f for f in factors}

    def support_tickets(self, tickets: TicketStats) -> FactorScore:
        if tickets.total == 0:
            return self._health(HealthFactor.SUPPORT_TICKETS, 100, "No support tickets in window")

        score = 100
        score -= min(30, tickets.open * 10)
        score -= min(20, tickets.high_priority * 10)
        if tickets.avg_resolution_hours > 48:
            score -= 10

        rationale = (
            f"{tickets.total} tickets, {tickets.open} open, {tickets.high_priority} high priority, "
            f"{tickets.avg_resolution_hours:.1f}h avg resolution"
        )
        return self._health(HealthFactor.SUPPORT_TICKETS, _clamp(score), rationale)

    def activity_level(self, aggregates: RawAggregates) -> FactorScore:
        e = aggregates.engagement
        score = 50
        score += min(25, (e.meetings + e.calls) * 5)

        recency = "no recorded interaction"
        if e.last_interaction_at is not None:
            days = (aggregates.window_end - e.last_interaction_at).total_seconds() / 86400
            if days < 7:
                score += 25
            elif days < 30:
                score += 15
            recency = f"last interaction {int(days)} days ago"

        rationale = f"{e.meetings} meetings, {e.calls} calls, {recency}"
        return self._health(HealthFactor.ACTIVITY_LEVEL, min(100, score), rationale)

    def contract_value(self, financial: FinancialStats) -> FactorScore:
        monthly = financial.contract_value or financial.annual_revenue / 12

        if monthly >= 10000:
            score = 100
        elif monthly >= 5000:
            score = 80
        elif monthly >= 1000:
            score = 60
        else:
            score = 40

        return self._health(HealthFactor.CONTRACT_VALUE, score, f"Monthly contract value {monthly:,.0f}")

    def payment_history(self, financial: FinancialStats) -> FactorScore:
        if financial.total_payments == 0:
            return self._health(HealthFactor.PAYMENT_HISTORY, 100, "No payment history yet")

        on_time = financial.total_payments - financial.late_payments
        score = round_half_up(100 * on_time / financial.total_payments)
        rationale = f"{financial.late_payments}/{financial.total_payments} late payments"
        return self._health(HealthFactor.PAYMENT_HISTORY, _clamp(score), rationale)

    def feature_adoption(self, usage: UsageStats) -> FactorScore:
        score = 0

        if usage.unique_users >= 10:
            score += 30
        elif usage.unique_users >= 5:
            score += 20
        elif usage.unique_users >= 1:
            score += 10

        if usage.total_sessions >= 100:
            score += 30
        elif usage.total_sessions >= 50:
            score += 20
        elif usage.total_sessions >= 10:
            score += 10

        if usage.total_features > 0:
            score += round_half_up(40 * usage.features_used / usage.total_features)

        rationale = (
            f"{usage.unique_users} active users, {usage.total_sessions} sessions, "
            f"{usage.features_used}/{usage.total_features} features adopted"
        )
        return self._health(HealthFactor.FEATURE_ADOPTION, _clamp(score), rationale)

    def relationship_length(self, months: int) -> FactorScore:
        if months >= 24:
            score = 100
        elif months >= 12:
            score = 80
        elif months >= 6:
            score = 60
        elif months >= 3:
            score = 40
        else:
            score = 20
        return self._health(HealthFactor.RELATIONSHIP_LENGTH, score, f"{months} months as a customer")

    @staticmethod
    def _lead(factor: LeadFactor, value: int, rationale: str) -> FactorScore:
        return FactorScore(factor=factor, value=value, rationale=rationale, source=FactorSource.DETERMINISTIC)

    @staticmethod
    def _health(factor: HealthFactor, value: int, rationale: str) -> FactorScore:
        return FactorScore(factor=factor, value=value, rationale=rationale, source=FactorSource.DETERMINISTIC)
