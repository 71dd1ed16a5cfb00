"""
Financial Advisor Agent

The chat panel's text generator. It receives the conversation so far and
streams back a reply.

BOUNDARIES:
- NEVER reads or writes the ledger
- NEVER sees credentials: only the chat messages and, when given, the
  user's summary totals
- Gives general budgeting and saving guidance, not regulated advice
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions

from moneyminder.config import GeminiSettings, Settings, get_settings
from moneyminder.errors import AdvisorUnavailableError
from moneyminder.models.finance import ChatMessage, FinancialSummary


logger = structlog.get_logger(__name__)


SYSTEM_PROMPT = """You are a helpful financial assistant for MoneyMinder.
Provide concise, practical financial advice and insights based on the user's questions.
Focus on budgeting, saving, investing, and general financial wellness.
Be friendly but professional, and offer actionable tips when possible.
Base your guidance on sound financial principles and rules of thumb."""


def summary_context(summary: FinancialSummary, currency: str = "USD") -> str:
    """One short paragraph of the user's numbers for the prompt."""
    return (
        f"The user's current totals ({currency}): income {summary.income}, "
        f"expenses {summary.expenses}, balance {summary.balance}, "
        f"savings rate {summary.savings_rate}%."
    )


def to_gemini_contents(messages: list[ChatMessage]) -> list[dict]:
    """Gemini calls the assistant side "model"."""
    return [
        {
            "role": "model" if message.role == "assistant" else "user",
            "parts": [message.content],
        }
        for message in messages
    ]


class AdvisorInterface(ABC):
    """Anything that can continue a chat conversation as a text stream."""

    @abstractmethod
    def stream_reply(
        self,
        messages: list[ChatMessage],
        summary: Optional[FinancialSummary] = None,
        currency: str = "USD",
    ) -> AsyncIterator[str]:
        pass


class FinancialAdvisorAgent(AdvisorInterface):
    """Gemini-backed advisor."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }

    def _model_for(self, summary: Optional[FinancialSummary], currency: str):
        instruction = SYSTEM_PROMPT
        if summary is not None:
            instruction = f"{SYSTEM_PROMPT}\n\n{summary_context(summary, currency)}"
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=self._generation_config,
            system_instruction=instruction,
        )

    async def stream_reply(
        self,
        messages: list[ChatMessage],
        summary: Optional[FinancialSummary] = None,
        currency: str = "USD",
    ) -> AsyncIterator[str]:
        model = self._model_for(summary, currency)
        try:
            response = await model.generate_content_async(
                to_gemini_contents(messages),
                stream=True,
            )
            async for chunk in response:
                try:
                    text = chunk.text
                except ValueError:
                    # Blocked by a safety filter: the chunk has no text part
                    logger.warning("advisor_chunk_blocked")
                    continue
                if text:
                    yield text
        except google_exceptions.GoogleAPIError as e:
            logger.error("advisor_request_failed", error=str(e))
            raise AdvisorUnavailableError("The financial advisor is unavailable") from e


def create_advisor(settings: Optional[Settings] = None) -> Optional[AdvisorInterface]:
    """
    Build the Gemini advisor, or None when no API key is configured.

    The chat endpoint answers 503 in that case; nothing else depends on it.
    """
    settings = settings or get_settings()
    try:
        gemini = settings.gemini
    except ValueError:
        logger.warning("advisor_not_configured")
        return None
    return FinancialAdvisorAgent(gemini)
