"""
LLM Provider implementations.
"""

from typing import Optional, Protocol, runtime_checkable

from config.settings import Settings

from .bedrock import BedrockProvider
from .openai_provider import OpenAIProvider


@runtime_checkable
class LLMProvider(Protocol):
    """What the enrichment adapter needs from a provider."""

    async def agenerate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        ...


def build_provider(settings: Settings) -> LLMProvider:
    """Create the provider selected by LLM_PROVIDER."""
    if settings.is_bedrock:
        return BedrockProvider(
            model_id=settings.llm_model_id,
            region=settings.aws_region,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
    if settings.is_openai:
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model_id=settings.llm_model_id,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
    raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")


__all__ = ["BedrockProvider", "OpenAIProvider", "LLMProvider", "build_provider"]
