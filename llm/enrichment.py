"""
AI enrichment adapter.

Calls the LLM provider for judgment-based factor scores, insights and
recommendations. Every failure (timeout, quota, provider error, malformed
output) comes back as an ``Unavailable`` result, never as an exception,
so the engine's fallback path is an ordinary branch.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import httpx
import openai
from botocore.exceptions import ConnectTimeoutError, ReadTimeoutError
from pydantic import BaseModel, Field, ValidationError

from scoring.factors import round_half_up
from scoring.models import FactorKey, FactorScore, FactorSource, RawAggregates, ScoringSubject, SubjectKind
from scoring.profiles import ScoringProfile

from .prompt_templates import PromptTemplates, PromptType
from .providers import LLMProvider
from .rate_limit import ProviderRateLimiter

logger = logging.getLogger(__name__)

TIMEOUT_ERRORS = (
    asyncio.TimeoutError,
    httpx.TimeoutException,
    openai.APITimeoutError,
    ReadTimeoutError,
    ConnectTimeoutError,
)


class UnavailableReason(Enum):
    """Why enrichment could not be used."""
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    DISABLED = "disabled"


@dataclass(frozen=True)
class AIEnrichment:
    """Successful enrichment, already on the canonical 0-100 scale."""
    factors: Dict[FactorKey, FactorScore]
    insights: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    confidence: float = 0.8
    churn_probability: Optional[float] = None


@dataclass(frozen=True)
class Unavailable:
    """Enrichment failed; the engine falls back to deterministic factors."""
    reason: UnavailableReason
    detail: str = ""


EnrichmentResult = Union[AIEnrichment, Unavailable]


class RecommendationItem(BaseModel):
    priority: Optional[str] = None
    action: str
    reason: Optional[str] = None

    def render(self) -> str:
        text = f"{self.action}: {self.reason}" if self.reason else self.action
        if self.priority:
            text = f"[{self.priority}] {text}"
        return text


class EnrichmentPayload(BaseModel):
    """Shape of the provider's JSON response."""
    factors: Dict[str, float] = Field(default_factory=dict)
    insights: List[str] = Field(default_factory=list)
    recommendations: List[Union[str, RecommendationItem]] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    churn_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    scale: Optional[float] = Field(default=None, gt=0)


class MalformedResponse(ValueError):
    """Provider output could not be turned into an enrichment."""


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


class AIEnrichmentAdapter:
    """
    Adapts an LLM provider to the enrichment contract.

    Factor values are rescaled from the provider's scale (the response's
    ``scale`` field, else ``default_scale``) to 0-100. Factor names that
    aren't part of the profile are dropped.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider],
        rate_limiter: Optional[ProviderRateLimiter] = None,
        default_scale: float = 100.0,
        enabled: bool = True,
        templates: Optional[PromptTemplates] = None,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.default_scale = default_scale
        self.enabled = enabled
        self.templates = templates or PromptTemplates()

    async def enrich(
        self,
        profile: ScoringProfile,
        subject: ScoringSubject,
        aggregates: RawAggregates,
    ) -> EnrichmentResult:
        """
        Ask the provider for an enrichment of one subject.

        Args:
            profile: Profile whose factors the provider should score
            subject: Subject being scored
            aggregates: Raw aggregates from collection

        Returns:
            AIEnrichment on success, Unavailable otherwise
        """
        if not self.enabled or self.provider is None:
            return Unavailable(UnavailableReason.DISABLED, "AI enrichment disabled")

        prompt_type = (
            PromptType.LEAD_ANALYSIS if subject.kind == SubjectKind.LEAD else PromptType.HEALTH_ANALYSIS
        )
        system, prompt = self.templates.build(
            prompt_type,
            subject.to_context(),
            aggregates.to_context(),
            [f.value for f in profile.factors],
        )

        try:
            raw = await self._call(prompt, system)
        except TIMEOUT_ERRORS as e:
            logger.warning(f"AI enrichment timed out for {subject.id}: {e}")
            return Unavailable(UnavailableReason.TIMEOUT, str(e) or "timeout")
        except openai.RateLimitError as e:
            logger.warning(f"AI enrichment quota exceeded for {subject.id}: {e}")
            return Unavailable(UnavailableReason.RATE_LIMITED, str(e))
        except Exception as e:
            logger.warning(f"AI enrichment failed for {subject.id}: {e}")
            return Unavailable(UnavailableReason.PROVIDER_ERROR, str(e))

        try:
            return self.parse(profile, raw)
        except MalformedResponse as e:
            logger.warning(f"Malformed AI enrichment for {subject.id}: {e}")
            return Unavailable(UnavailableReason.MALFORMED, str(e))

    async def _call(self, prompt: str, system: str) -> str:
        if self.rate_limiter is None:
            return await self.provider.agenerate(prompt, system=system, json_mode=True)
        async with self.rate_limiter:
            return await self.provider.agenerate(prompt, system=system, json_mode=True)

    def parse(self, profile: ScoringProfile, raw: str) -> AIEnrichment:
        """
        Validate and normalize a provider response.

        Raises:
            MalformedResponse: If the text isn't a valid enrichment payload
        """
        text = _FENCE.sub("", (raw or "").strip())
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponse("response contains no JSON object")

        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"invalid JSON: {e}") from e

        try:
            payload = EnrichmentPayload.model_validate(data)
        except ValidationError as e:
            raise MalformedResponse(f"unexpected payload: {e.error_count()} validation errors") from e

        scale = payload.scale or self.default_scale
        factors: Dict[FactorKey, FactorScore] = {}
        for name, raw_value in payload.factors.items():
            try:
                key = profile.factor_type(name)
            except ValueError:
                logger.warning(f"Dropping unknown AI factor '{name}' for profile {profile.name}")
                continue

            value = raw_value * 100.0 / scale
            if not 0.0 <= value <= 100.0:
                raise MalformedResponse(f"factor {name}={raw_value:g} outside 0-{scale:g}")

            factors[key] = FactorScore(
                factor=key,
                value=round_half_up(value),
                rationale=f"AI assessment ({raw_value:g}/{scale:g})",
                source=FactorSource.AI,
            )

        recommendations = tuple(
            item.render() if isinstance(item, RecommendationItem) else item.strip()
            for item in payload.recommendations
        )

        return AIEnrichment(
            factors=factors,
            insights=tuple(i.strip() for i in payload.insights if i.strip()),
            recommendations=tuple(r for r in recommendations if r),
            confidence=payload.confidence,
            churn_probability=payload.churn_probability,
        )
