"""
LLM Module for the CRM scoring engine.

This module handles:
- LLM provider abstraction (Bedrock, OpenAI)
- Prompt template management
- AI enrichment of factor scores, rate limited per provider
"""

from .enrichment import (
    AIEnrichment,
    AIEnrichmentAdapter,
    EnrichmentResult,
    Unavailable,
    UnavailableReason,
)
from .prompt_templates import PromptTemplates, PromptType
from .rate_limit import ProviderRateLimiter

__all__ = [
    "AIEnrichment",
    "AIEnrichmentAdapter",
    "EnrichmentResult",
    "Unavailable",
    "UnavailableReason",
    "PromptTemplates",
    "PromptType",
    "ProviderRateLimiter",
]
