"""AI Agents package."""

from moneyminder.agents.advisor import (
    AdvisorInterface,
    FinancialAdvisorAgent,
    create_advisor,
    to_gemini_contents,
)

__all__ = [
    "AdvisorInterface",
    "FinancialAdvisorAgent",
    "create_advisor",
    "to_gemini_contents",
]
