"""
CRM scoring engine.

Domain types, profiles and the pure scoring stages. The pipeline itself
lives in ``scoring.engine`` and ``scoring.batch``, which pull in the LLM
layer.
"""

from .aggregator import ScoreAggregator, merge_factors
from .alerts import DeltaAlertEmitter, FollowUpTask, TaskPriority, TaskSink
from .classifier import RiskClassifier
from .collector import FactorCollector
from .errors import (
    AggregationError,
    CollectionError,
    PersistenceError,
    ScoringError,
    SubjectNotFoundError,
)
from .factors import DeterministicFactorScorer
from .history import HistoryStore
from .models import (
    Alert,
    FactorScore,
    FactorSource,
    HealthFactor,
    HealthRisk,
    LeadFactor,
    LeadGrade,
    RawAggregates,
    ScoreSnapshot,
    ScoreTrigger,
    ScoringSubject,
    SubjectKind,
)
from .profiles import DEFAULT_PROFILES, HEALTH_PROFILE, LEAD_PROFILE, ScoringProfile
from .recommendations import RecommendationRules

__all__ = [
    "ScoreAggregator",
    "merge_factors",
    "DeltaAlertEmitter",
    "FollowUpTask",
    "TaskPriority",
    "TaskSink",
    "RiskClassifier",
    "FactorCollector",
    "AggregationError",
    "CollectionError",
    "PersistenceError",
    "ScoringError",
    "SubjectNotFoundError",
    "DeterministicFactorScorer",
    "HistoryStore",
    "Alert",
    "FactorScore",
    "FactorSource",
    "HealthFactor",
    "HealthRisk",
    "LeadFactor",
    "LeadGrade",
    "RawAggregates",
    "ScoreSnapshot",
    "ScoreTrigger",
    "ScoringSubject",
    "SubjectKind",
    "DEFAULT_PROFILES",
    "HEALTH_PROFILE",
    "LEAD_PROFILE",
    "ScoringProfile",
    "RecommendationRules",
]
