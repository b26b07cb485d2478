"""
Weighted aggregation of factor scores into one overall score.
"""

import logging
from typing import Dict, Mapping, Optional

from .errors import AggregationError
from .factors import round_half_up
from .models import FactorKey, FactorScore
from .profiles import ScoringProfile

logger = logging.getLogger(__name__)


def merge_factors(
    deterministic: Mapping[FactorKey, FactorScore],
    ai: Optional[Mapping[FactorKey, FactorScore]] = None,
) -> Dict[FactorKey, FactorScore]:
    """
    Overlay AI factor scores on the deterministic ones.

    AI values take precedence for the factors they cover; everything else
    keeps its deterministic value.
    """
    merged = dict(deterministic)
    if ai:
        merged.update(ai)
    return merged


class ScoreAggregator:
    """Combines sub-scores via a profile's weights."""

    def aggregate(self, profile: ScoringProfile, factors: Mapping[FactorKey, FactorScore]) -> int:
        """
        Weighted sum of factor values, rounded and clamped to 0-100.

        Args:
            profile: Scoring profile providing the weights
            factors: Factor scores keyed by factor

        Returns:
            Overall score

        Raises:
            AggregationError: If the profile is misconfigured or a factor
                does not belong to it
        """
        profile.validate()

        for key, factor in factors.items():
            if key not in profile.weights or factor.factor != key:
                raise AggregationError(
                    f"Factor {getattr(key, 'value', key)!r} is not part of profile '{profile.name}'"
                )

        total = 0.0
        for key, weight in profile.weights.items():
            factor = factors.get(key)
            if factor is None:
                logger.debug(f"Factor {key.value} missing for profile {profile.name}, counted as 0")
                continue
            total += factor.value * weight

        return max(0, min(100, round_half_up(total)))
