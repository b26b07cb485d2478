"""
AWS Bedrock LLM Provider.
"""

import asyncio
import json
import logging
from typing import List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class BedrockProvider:
    """
    AWS Bedrock LLM provider.

    Supports Claude models via Bedrock. The runtime client is synchronous,
    so async calls run it in a worker thread.
    """

    DEFAULT_MODEL = "us.anthropic.claude-sonnet-4-20250514-v1:0"

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL,
        region: str = "us-east-1",
        max_tokens: int = 800,
        temperature: float = 0.3,
        timeout: float = 30.0,
        client=None,
    ):
        """
        Initialize Bedrock provider.

        Args:
            model_id: Bedrock model ID
            region: AWS region
            max_tokens: Maximum tokens for response
            temperature: Generation temperature
            timeout: Read timeout in seconds
            client: Pre-built bedrock-runtime client
        """
        self.model_id = model_id
        self.region = region
        self.max_tokens = max_tokens
        self.temperature = temperature

        self._client = client or boto3.client(
            "bedrock-runtime",
            region_name=region,
            config=Config(read_timeout=timeout, retries={"max_attempts": 2, "mode": "standard"}),
        )
        logger.info(f"Bedrock provider initialized: {model_id} in {region}")

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        stop_sequences: Optional[List[str]] = None,
    ) -> str:
        """
        Generate response from prompt.

        Args:
            prompt: User prompt
            system: System prompt
            json_mode: Instruct the model to answer with JSON only
            max_tokens: Override max tokens
            temperature: Override temperature
            stop_sequences: Stop sequences

        Returns:
            Generated response
        """
        if json_mode:
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": prompt}]
                }
            ]
        }

        if system:
            body["system"] = system

        if stop_sequences:
            body["stop_sequences"] = stop_sequences

        try:
            response = self._client.invoke_model(
                modelId=self.model_id,
                body=json.dumps(body),
                contentType="application/json",
                accept="application/json",
            )
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            logger.error(f"Bedrock API error: {e}")
            raise
        except Exception as e:
            logger.error(f"Bedrock generation failed: {e}")
            raise

        if "content" in response_body and response_body["content"]:
            return response_body["content"][0]["text"].strip()

        logger.warning("Empty response from Bedrock")
        return ""

    async def agenerate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Async wrapper for generate."""
        return await asyncio.to_thread(
            self.generate,
            prompt,
            system,
            json_mode,
            max_tokens,
            temperature,
        )
