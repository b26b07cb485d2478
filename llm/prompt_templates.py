"""
Prompt Templates for AI enrichment.

One template per scoring profile. Both ask for a JSON object whose factor
keys match the profile's factors.
"""

import json
from enum import Enum
from typing import Any, Dict, Iterable, Tuple


class PromptType(Enum):
    """Types of prompts."""
    LEAD_ANALYSIS = "lead_analysis"
    HEALTH_ANALYSIS = "health_analysis"


class PromptTemplates:
    """
    Manages prompt templates for subject enrichment.
    """

    SYSTEM_PROMPTS = {
        PromptType.LEAD_ANALYSIS: """You are an expert B2B sales analyst.

Analyze leads and judge their likelihood to convert. Score each requested
factor from 0 to 100, give short factual insights, and list the next best
sales actions. Base every judgment on the data provided; never invent
company facts.""",

        PromptType.HEALTH_ANALYSIS: """You are a customer success expert analyzing B2B SaaS customer health data.

Provide actionable recommendations to prevent churn and improve customer
satisfaction. Focus on specific, measurable actions the customer success
team can take. Score each requested factor from 0 to 100.""",
    }

    USER_TEMPLATES = {
        PromptType.LEAD_ANALYSIS: """Analyze this B2B lead for sales potential.

Lead:
{subject}

Engagement data (last {window_days} days):
{aggregates}

Return a JSON object with:
- "factors": object with a 0-100 score for each of: {factor_names}
- "insights": array of key observations
- "recommendations": array of next best actions
- "confidence": your confidence in this assessment, 0-1
- "scale": 100""",

        PromptType.HEALTH_ANALYSIS: """Analyze this B2B customer's health data and provide recommendations.

Account:
{subject}

Metrics (last {window_days} days):
{aggregates}

Return a JSON object with:
- "factors": object with a 0-100 score for each of: {factor_names}
- "insights": array of the top risk factors and growth opportunities
- "recommendations": array of {{"priority": "critical|high|medium", "action": "...", "reason": "..."}}
- "churn_probability": estimated churn probability, 0-1
- "confidence": your confidence in this assessment, 0-1
- "scale": 100""",
    }

    def get_system_prompt(self, prompt_type: PromptType) -> str:
        return self.SYSTEM_PROMPTS[prompt_type]

    def build(
        self,
        prompt_type: PromptType,
        subject: Dict[str, Any],
        aggregates: Dict[str, Any],
        factor_names: Iterable[str],
    ) -> Tuple[str, str]:
        """
        Build the (system, user) prompt pair.

        Args:
            prompt_type: Which profile's template to use
            subject: Subject attributes
            aggregates: Raw aggregates for the window
            factor_names: Factor keys the response must score

        Returns:
            Tuple of system prompt and user prompt
        """
        user = self.USER_TEMPLATES[prompt_type].format(
            subject=self._render(subject),
            aggregates=self._render({k: v for k, v in aggregates.items() if k != "window_days"}),
            window_days=aggregates.get("window_days", 30),
            factor_names=", ".join(factor_names),
        )
        return self.get_system_prompt(prompt_type), user

    @staticmethod
    def _render(data: Dict[str, Any]) -> str:
        cleaned = {k: v for k, v in data.items() if v not in (None, "", [], {})}
        return json.dumps(cleaned, indent=2, sort_keys=True, default=str)
