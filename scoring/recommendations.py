"""
Static recommendation rules for the fallback path.

Keyed by the lowest-scoring factors so the list always points at what
is dragging the score down. Never returns an empty list.
"""

from typing import Dict, List, Mapping

from .models import FactorKey, FactorScore, HealthFactor, LeadFactor, LeadGrade, RiskCategory, SubjectKind
from .profiles import ScoringProfile


class RecommendationRules:
    """Rule-based recommendations for leads and accounts."""

    LOW_FACTOR_THRESHOLD = 60
    LOWEST_FACTORS = 3
    MAX_RECOMMENDATIONS = 5

    HEALTH_RULES: Dict[FactorKey, str] = {
        HealthFactor.SUPPORT_TICKETS: (
            "Schedule support review meeting: high number of support tickets "
            "indicates potential product issues"
        ),
        HealthFactor.ACTIVITY_LEVEL: (
            "Reach out for quarterly business review: low engagement may "
            "indicate declining interest"
        ),
        HealthFactor.FEATURE_ADOPTION: (
            "Offer product training session: low feature adoption limits value realization"
        ),
        HealthFactor.PAYMENT_HISTORY: (
            "Review payment terms and setup: payment issues may indicate budget constraints"
        ),
        HealthFactor.CONTRACT_VALUE: (
            "Explore expansion opportunities: contract value is below target tiers"
        ),
        HealthFactor.RELATIONSHIP_LENGTH: (
            "Run an onboarding check-in: relationship is still new"
        ),
    }
    HEALTH_ESCALATION = "Executive escalation required: account at high risk of churn"
    HEALTH_DEFAULT = "Maintain regular check-ins: account health is stable"

    LEAD_RULES: Dict[FactorKey, str] = {
        LeadFactor.COMPANY_SIZE: "Verify company details and firmographics",
        LeadFactor.JOB_TITLE: "Identify the decision maker on the buying team",
        LeadFactor.ENGAGEMENT: "Send targeted nurture content to build engagement",
        LeadFactor.FIT_SCORE: "Qualify against the ideal customer profile",
        LeadFactor.INTENT_SIGNALS: "Share pricing and demo resources to surface intent",
    }
    LEAD_GRADE_ACTIONS = {
        LeadGrade.A: "Follow up within 24 hours",
        LeadGrade.B: "Schedule a demo",
        LeadGrade.C: "Add to nurture campaign",
        LeadGrade.D: "Add to nurture campaign",
        LeadGrade.F: "Deprioritize and monitor for new activity",
    }

    def recommend(
        self,
        profile: ScoringProfile,
        score: int,
        category: RiskCategory,
        factors: Mapping[FactorKey, FactorScore],
    ) -> List[str]:
        """Build the recommendation list for a snapshot."""
        if profile.kind == SubjectKind.LEAD:
            recommendations = self._lead(category, factors)
        else:
            recommendations = self._health(score, factors)
        return recommendations[: self.MAX_RECOMMENDATIONS]

    def _lowest(self, factors: Mapping[FactorKey, FactorScore]) -> List[FactorScore]:
        ranked = sorted(factors.values(), key=lambda f: (f.value, f.factor.value))
        return [f for f in ranked[: self.LOWEST_FACTORS] if f.value < self.LOW_FACTOR_THRESHOLD]

    def _health(self, score: int, factors: Mapping[FactorKey, FactorScore]) -> List[str]:
        recommendations = [
            self.HEALTH_RULES[f.factor] for f in self._lowest(factors) if f.factor in self.HEALTH_RULES
        ]
        if score < 40:
            recommendations.append(self.HEALTH_ESCALATION)
        return recommendations or [self.HEALTH_DEFAULT]

    def _lead(self, category: RiskCategory, factors: Mapping[FactorKey, FactorScore]) -> List[str]:
        recommendations = [self.LEAD_GRADE_ACTIONS.get(category, "Add to nurture campaign")]
        recommendations.extend(
            self.LEAD_RULES[f.factor] for f in self._lowest(factors) if f.factor in self.LEAD_RULES
        )
        return recommendations
