"""
Scoring profiles: immutable weight and threshold sets, one per subject kind.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple, Type

from .errors import AggregationError
from .models import FactorKey, HealthFactor, HealthRisk, LeadFactor, LeadGrade, SubjectKind

WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True, eq=False)
class ScoringProfile:
    """
    Weights and risk thresholds for one subject kind.

    ``thresholds`` is ordered best category first; each entry is the minimum
    overall score for that category, the last entry being the catch-all.
    Construction fails with AggregationError when the weights don't sum
    to 1.0 or reference a factor outside ``factor_type``.
    """
    name: str
    kind: SubjectKind
    factor_type: Type
    weights: Mapping[FactorKey, float]
    thresholds: Tuple[Tuple[object, int], ...]

    def __post_init__(self):
        # Freeze the mapping so a profile can't be mutated after validation
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        self.validate()

    def validate(self):
        """Check the configuration-time invariants."""
        for key, weight in self.weights.items():
            if not isinstance(key, self.factor_type):
                raise AggregationError(
                    f"Profile '{self.name}' weights unknown factor {key!r}"
                )
            if weight < 0:
                raise AggregationError(
                    f"Profile '{self.name}' has negative weight for {key.value}"
                )
        total = math.fsum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise AggregationError(
                f"Profile '{self.name}' weights sum to {total:.6f}, expected 1.0"
            )
        floors = [floor for _, floor in self.thresholds]
        if floors != sorted(floors, reverse=True) or not floors or floors[-1] != 0:
            raise AggregationError(
                f"Profile '{self.name}' thresholds must descend to a 0 catch-all"
            )

    @property
    def factors(self) -> Tuple[FactorKey, ...]:
        return tuple(self.weights.keys())


LEAD_PROFILE = ScoringProfile(
    name="lead",
    kind=SubjectKind.LEAD,
    factor_type=LeadFactor,
    weights={
        LeadFactor.COMPANY_SIZE: 0.20,
        LeadFactor.JOB_TITLE: 0.20,
        LeadFactor.ENGAGEMENT: 0.25,
        LeadFactor.FIT_SCORE: 0.20,
        LeadFactor.INTENT_SIGNALS: 0.15,
    },
    thresholds=(
        (LeadGrade.A, 80),
        (LeadGrade.B, 60),
        (LeadGrade.C, 40),
        (LeadGrade.D, 20),
        (LeadGrade.F, 0),
    ),
)

HEALTH_PROFILE = ScoringProfile(
    name="health",
    kind=SubjectKind.ACCOUNT,
    factor_type=HealthFactor,
    weights={
        HealthFactor.SUPPORT_TICKETS: 0.25,
        HealthFactor.ACTIVITY_LEVEL: 0.20,
        HealthFactor.CONTRACT_VALUE: 0.15,
        HealthFactor.PAYMENT_HISTORY: 0.15,
        HealthFactor.FEATURE_ADOPTION: 0.15,
        HealthFactor.RELATIONSHIP_LENGTH: 0.10,
    },
    thresholds=(
        (HealthRisk.HEALTHY, 80),
        (HealthRisk.AT_RISK, 60),
        (HealthRisk.CRITICAL, 0),
    ),
)

DEFAULT_PROFILES = {
    SubjectKind.LEAD: LEAD_PROFILE,
    SubjectKind.ACCOUNT: HEALTH_PROFILE,
}
