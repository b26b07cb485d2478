"""
Domain types for the CRM scoring engine.

Subjects, raw aggregates, factor scores, snapshots and alerts.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


def utcnow() -> datetime:
    """Naive UTC timestamp, the form persisted by the history store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class SubjectKind(Enum):
    """Kinds of CRM records the engine scores."""
    LEAD = "lead"
    ACCOUNT = "account"


class LeadFactor(Enum):
    """Factors of the lead profile."""
    COMPANY_SIZE = "company_size"
    JOB_TITLE = "job_title"
    ENGAGEMENT = "engagement"
    FIT_SCORE = "fit_score"
    INTENT_SIGNALS = "intent_signals"


class HealthFactor(Enum):
    """Factors of the customer health profile."""
    SUPPORT_TICKETS = "support_tickets"
    ACTIVITY_LEVEL = "activity_level"
    CONTRACT_VALUE = "contract_value"
    PAYMENT_HISTORY = "payment_history"
    FEATURE_ADOPTION = "feature_adoption"
    RELATIONSHIP_LENGTH = "relationship_length"


FactorKey = Union[LeadFactor, HealthFactor]


class FactorSource(Enum):
    """Where a factor value came from."""
    DETERMINISTIC = "deterministic"
    AI = "ai"


class LeadGrade(Enum):
    """Lead grades, best to worst."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class HealthRisk(Enum):
    """Account risk levels."""
    HEALTHY = "healthy"
    AT_RISK = "at_risk"
    CRITICAL = "critical"


RiskCategory = Union[LeadGrade, HealthRisk]


class ScoreTrigger(Enum):
    """Why a scoring run was requested."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    SUPPORT_TICKET = "support_ticket"
    POSITIVE_ENGAGEMENT = "positive_engagement"
    INACTIVITY_CHECK = "inactivity_check"


@dataclass(frozen=True)
class ScoringSubject:
    """A lead or account as seen by the engine. Read-only."""
    id: str
    kind: SubjectKind
    name: str = ""
    owner_id: Optional[str] = None

    # Lead attributes
    email: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    source: Optional[str] = None

    # Account attributes
    industry: Optional[str] = None

    # Tenure start (record creation)
    created_at: Optional[datetime] = None

    @property
    def email_domain(self) -> Optional[str]:
        if not self.email or "@" not in self.email:
            return None
        return self.email.rsplit("@", 1)[1].strip().lower()

    def to_context(self) -> Dict[str, Any]:
        """Attributes handed to the AI enrichment provider."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "email": self.email,
            "title": self.title,
            "company": self.company,
            "website": self.website,
            "source": self.source,
            "industry": self.industry,
        }


@dataclass(frozen=True)
class TicketStats:
    """Support ticket statistics over the window."""
    total: int = 0
    open: int = 0
    high_priority: int = 0
    avg_resolution_hours: float = 0.0


@dataclass(frozen=True)
class EngagementStats:
    """Behavioral engagement over the window."""
    sessions: int = 0
    page_views: int = 0
    form_submissions: int = 0
    chat_conversations: int = 0
    meetings: int = 0
    calls: int = 0
    page_view_urls: Tuple[str, ...] = ()
    last_session_at: Optional[datetime] = None
    last_interaction_at: Optional[datetime] = None


@dataclass(frozen=True)
class FinancialStats:
    """Contract and payment figures. contract_value is monthly."""
    contract_value: float = 0.0
    annual_revenue: float = 0.0
    late_payments: int = 0
    total_payments: int = 0


@dataclass(frozen=True)
class UsageStats:
    """Product usage figures."""
    unique_users: int = 0
    total_sessions: int = 0
    features_used: int = 0
    total_features: int = 0


@dataclass(frozen=True)
class RawAggregates:
    """Time-windowed raw aggregates for one subject."""
    subject_id: str
    window_start: datetime
    window_end: datetime
    engagement: EngagementStats = field(default_factory=EngagementStats)
    tickets: Optional[TicketStats] = None
    financial: Optional[FinancialStats] = None
    usage: Optional[UsageStats] = None
    tenure_months: int = 0

    def to_context(self) -> Dict[str, Any]:
        """Aggregates handed to the AI enrichment provider."""
        e = self.engagement
        context: Dict[str, Any] = {
            "window_days": (self.window_end - self.window_start).days,
            "engagement": {
                "sessions": e.sessions,
                "page_views": e.page_views,
                "form_submissions": e.form_submissions,
                "chat_conversations": e.chat_conversations,
                "meetings": e.meetings,
                "calls": e.calls,
                "high_value_pages": sorted({u for u in e.page_view_urls}),
            },
            "tenure_months": self.tenure_months,
        }
        if self.tickets is not None:
            context["support_tickets"] = {
                "total": self.tickets.total,
                "open": self.tickets.open,
                "high_priority": self.tickets.high_priority,
                "avg_resolution_hours": self.tickets.avg_resolution_hours,
            }
        if self.financial is not None:
            context["financials"] = {
                "contract_value": self.financial.contract_value,
                "annual_revenue": self.financial.annual_revenue,
                "late_payments": self.financial.late_payments,
                "total_payments": self.financial.total_payments,
            }
        if self.usage is not None:
            context["usage"] = {
                "unique_users": self.usage.unique_users,
                "total_sessions": self.usage.total_sessions,
                "features_used": self.usage.features_used,
                "total_features": self.usage.total_features,
            }
        return context


@dataclass(frozen=True)
class FactorScore:
    """One normalized sub-score (0-100) with its rationale."""
    factor: FactorKey
    value: int
    rationale: str = ""
    source: FactorSource = FactorSource.DETERMINISTIC

    def __post_init__(self):
        if not isinstance(self.factor, (LeadFactor, HealthFactor)):
            raise TypeError(f"Unrecognized factor: {self.factor!r}")
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Factor value must be an int, got {type(self.value).__name__}")
        if not 0 <= self.value <= 100:
            raise ValueError(f"Factor {self.factor.value} out of range: {self.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor.value,
            "value": self.value,
            "rationale": self.rationale,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class ScoreSnapshot:
    """One immutable scoring result for a subject."""
    subject_id: str
    profile: str
    overall_score: int
    factors: Tuple[FactorScore, ...]
    risk_category: RiskCategory
    confidence: float
    computed_at: datetime
    churn_probability: Optional[float] = None
    recommendations: Tuple[str, ...] = ()
    insights: Tuple[str, ...] = ()
    previous_score: Optional[int] = None
    delta: Optional[int] = None
    ai_enriched: bool = False
    trigger: ScoreTrigger = ScoreTrigger.SCHEDULED
    model_version: str = ""
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if not 0 <= self.overall_score <= 100:
            raise ValueError(f"Overall score out of range: {self.overall_score}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence out of range: {self.confidence}")

    def factor_map(self) -> Dict[FactorKey, FactorScore]:
        return {f.factor: f for f in self.factors}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "profile": self.profile,
            "overall_score": self.overall_score,
            "factors": [f.to_dict() for f in self.factors],
            "risk_category": self.risk_category.value,
            "churn_probability": self.churn_probability,
            "recommendations": list(self.recommendations),
            "insights": list(self.insights),
            "computed_at": self.computed_at.isoformat(),
            "previous_score": self.previous_score,
            "delta": self.delta,
            "confidence": self.confidence,
            "ai_enriched": self.ai_enriched,
            "trigger": self.trigger.value,
            "model_version": self.model_version,
        }


@dataclass
class Alert:
    """Raised when a subject's score regresses sharply. Only ``resolved`` changes."""
    subject_id: str
    triggering_snapshot_id: str
    delta: int
    previous_score: int
    overall_score: int
    created_at: datetime = field(default_factory=utcnow)
    resolved: bool = False
    id: str = field(default_factory=new_id)
