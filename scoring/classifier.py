"""
Risk classification and rule-based churn estimation.
"""

from typing import Mapping, Optional

from .models import FactorKey, FactorScore, HealthFactor, RiskCategory, SubjectKind
from .profiles import ScoringProfile

MAX_CHURN_PROBABILITY = 0.95


class RiskClassifier:
    """
    Maps overall scores to lead grades or account risk levels.

    Churn bands (health only):
    - score < 40: 0.7
    - score < 60: 0.4
    - score < 80: 0.2
    - otherwise:  0.05
    Penalties: +0.1 support_tickets < 50, +0.1 payment_history < 70,
    +0.15 activity_level < 30. Result clamped to [0, 0.95].
    """

    CHURN_BANDS = ((40, 0.7), (60, 0.4), (80, 0.2))
    CHURN_FLOOR = 0.05
    CHURN_PENALTIES = (
        (HealthFactor.SUPPORT_TICKETS, 50, 0.1),
        (HealthFactor.PAYMENT_HISTORY, 70, 0.1),
        (HealthFactor.ACTIVITY_LEVEL, 30, 0.15),
    )

    def classify(self, profile: ScoringProfile, score: int) -> RiskCategory:
        for category, floor in profile.thresholds:
            if score >= floor:
                return category
        return profile.thresholds[-1][0]

    def churn_probability(self, score: int, factors: Mapping[FactorKey, FactorScore]) -> float:
        probability = self.CHURN_FLOOR
        for ceiling, base in self.CHURN_BANDS:
            if score < ceiling:
                probability = base
                break

        for factor, below, penalty in self.CHURN_PENALTIES:
            value = factors.get(factor)
            if value is not None and value.value < below:
                probability += penalty

        return round(max(0.0, min(MAX_CHURN_PROBABILITY, probability)), 4)

    def resolve_churn(
        self,
        profile: ScoringProfile,
        score: int,
        factors: Mapping[FactorKey, FactorScore],
        ai_estimate: Optional[float] = None,
    ) -> Optional[float]:
        """Churn probability for health subjects; None for leads."""
        if profile.kind != SubjectKind.ACCOUNT:
            return None
        if ai_estimate is not None:
            return round(max(0.0, min(MAX_CHURN_PROBABILITY, ai_estimate)), 4)
        return self.churn_probability(score, factors)
