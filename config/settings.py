"""
Centralized configuration for the CRM scoring engine.

All settings are loaded from environment variables via .env file.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # AWS / Bedrock
    aws_region: str = Field(default="us-east-1", env="AWS_REGION")
    bedrock_llm_model_id: str = Field(
        default="us.anthropic.claude-sonnet-4-20250514-v1:0", env="BEDROCK_LLM_MODEL_ID"
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_llm_model: str = Field(default="gpt-4o-mini", env="OPENAI_LLM_MODEL")

    # LLM provider selection
    llm_provider: str = Field(default="openai", env="LLM_PROVIDER")  # bedrock | openai
    max_tokens: int = Field(default=800, env="MAX_TOKENS")
    temperature: float = Field(default=0.3, env="TEMPERATURE")

    # AI enrichment
    ai_enrichment_enabled: bool = Field(default=True, env="AI_ENRICHMENT_ENABLED")
    ai_requests_per_minute: int = Field(default=60, env="AI_REQUESTS_PER_MINUTE")
    ai_max_concurrency: int = Field(default=4, env="AI_MAX_CONCURRENCY")
    ai_factor_scale: float = Field(default=100.0, env="AI_FACTOR_SCALE")

    # Scoring
    scoring_window_days: int = Field(default=30, env="SCORING_WINDOW_DAYS")
    alert_drop_threshold: int = Field(default=20, env="ALERT_DROP_THRESHOLD")
    alert_due_in_days: int = Field(default=2, env="ALERT_DUE_IN_DAYS")
    fallback_confidence_ceiling: float = Field(default=0.6, env="FALLBACK_CONFIDENCE_CEILING")
    scoring_model_version: str = Field(default="2.0", env="SCORING_MODEL_VERSION")

    # Batch
    batch_workers: int = Field(default=4, env="BATCH_WORKERS")
    batch_throttle_every: int = Field(default=10, env="BATCH_THROTTLE_EVERY")
    batch_throttle_seconds: float = Field(default=0.1, env="BATCH_THROTTLE_SECONDS")

    # Database
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")
    persistence_retries: int = Field(default=1, env="PERSISTENCE_RETRIES")

    # Follow-up tasks
    task_webhook_url: Optional[str] = Field(default=None, env="TASK_WEBHOOK_URL")
    task_webhook_api_key: Optional[str] = Field(default=None, env="TASK_WEBHOOK_API_KEY")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_bedrock(self) -> bool:
        return self.llm_provider.lower() == "bedrock"

    @property
    def is_openai(self) -> bool:
        return self.llm_provider.lower() == "openai"

    @property
    def llm_model_id(self) -> str:
        if self.is_openai:
            return self.openai_llm_model
        return self.bedrock_llm_model_id


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def configure_logging(level: Optional[str] = None):
    """Apply a basic logging configuration for hosts that don't set one up."""
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
