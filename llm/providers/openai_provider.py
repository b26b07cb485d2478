"""
OpenAI LLM Provider.
"""

import logging
from typing import Dict, List, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI LLM provider.

    Supports GPT-4 class models. JSON mode uses the API's
    ``json_object`` response format.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 800,
        temperature: float = 0.3,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model_id: Model ID
            max_tokens: Maximum tokens
            temperature: Generation temperature
            timeout: Request timeout in seconds (owned by the transport)
            max_retries: Transport-level retries
            client: Pre-built async client
        """
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI provider initialized: {model_id}")

    async def agenerate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generate response from prompt.

        Args:
            prompt: User prompt
            system: System prompt
            json_mode: Ask the API for a JSON object response
            max_tokens: Override max tokens
            temperature: Override temperature

        Returns:
            Generated response
        """
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self.model_id,
                messages=messages,
                max_tokens=max_tokens or self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise

        content = response.choices[0].message.content
        return (content or "").strip()
