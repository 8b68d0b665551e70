"""
AI Text Helpers Module

Short generated texts for the back office (a financial tip, a random fact,
a welcome message for new clients) from the Gemini generateContent REST
API. Every helper has a fixed fallback text used when no API key is
configured or the call fails.
"""

import httpx
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .config import LendingConfig

logger = logging.getLogger("lending.assistant")

LANGUAGES = {"es": "Spanish", "en": "English", "de": "German", "fr": "French"}

FINANCIAL_TIP_PROMPT = (
    "Write one short, useful financial tip in {language} for someone managing small "
    "loans between friends or family. Keep it positive and easy to understand."
)
RANDOM_FACT_PROMPT = (
    "Write one short interesting fact in {language}: general knowledge, a positive "
    "current event (nothing political or controversial) or a 'did you know'. "
    "The tone should be one of discovery and easy to follow."
)
WELCOME_PROMPT = (
    "Write a short, warm and professional welcome message in {language} for a new "
    "client of a lending service called \"{business}\". The client's name is {name}. "
    "The tone should convey trust and positivity."
)

FALLBACK_TIP_DISABLED = "AI helpers are not configured. Financial tips are disabled."
FALLBACK_TIP_ERROR = "A financial tip could not be fetched right now. Please try again later."
FALLBACK_FACT_DISABLED = "AI helpers are not configured. Random facts are disabled."
FALLBACK_FACT_ERROR = ("Did you know that the Eiffel Tower can be 15 cm taller in summer "
                       "because of the thermal expansion of iron?")


@dataclass
class AssistantReply:
    """Generated text and where it came from"""
    text: str
    generated: bool  # False when a fallback text was used
    latency_ms: float = 0.0


class GeminiAssistant:
    """REST client for the Gemini generateContent endpoint"""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 15.0,
        language: str = "Spanish",
        business_name: str = "B.M Contigo",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.business_name = business_name
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: LendingConfig,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> 'GeminiAssistant':
        return cls(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout=config.gemini_timeout,
            language=LANGUAGES.get(config.locale.split("_")[0], "English"),
            business_name=config.business_name,
            transport=transport
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str) -> Optional[str]:
        """
        Generate text for a prompt.

        Returns:
            The generated text, or None when disabled or on any failure
        """
        if not self.enabled:
            return None

        try:
            response = await self._client.post(
                f"{self.base_url}/models/{self.model}:generateContent",
                json={"contents": [{"parts": [{"text": prompt}]}]},
                headers={"x-goog-api-key": self.api_key}
            )
        except httpx.HTTPError as e:
            logger.error(f"Gemini connection failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Gemini returned {response.status_code}: {response.text}")
            return None

        try:
            parts = response.json()["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts).strip()
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Unexpected Gemini response: {e}")
            return None
        return text or None

    async def _reply(self, prompt: str, disabled_text: str, error_text: str) -> AssistantReply:
        if not self.enabled:
            return AssistantReply(disabled_text, generated=False)
        start = time.time()
        text = await self.generate(prompt)
        latency_ms = (time.time() - start) * 1000
        if text is None:
            return AssistantReply(error_text, generated=False, latency_ms=latency_ms)
        return AssistantReply(text, generated=True, latency_ms=latency_ms)

    async def financial_tip(self) -> AssistantReply:
        return await self._reply(
            FINANCIAL_TIP_PROMPT.format(language=self.language),
            FALLBACK_TIP_DISABLED, FALLBACK_TIP_ERROR
        )

    async def random_fact(self) -> AssistantReply:
        return await self._reply(
            RANDOM_FACT_PROMPT.format(language=self.language),
            FALLBACK_FACT_DISABLED, FALLBACK_FACT_ERROR
        )

    async def welcome_message(self, client_name: str) -> AssistantReply:
        """Welcome text for a new client; the fallback is a fixed greeting"""
        fallback = (f"Welcome, {client_name}! We are happy to have you join "
                    f"the {self.business_name} community.")
        prompt = WELCOME_PROMPT.format(language=self.language, business=self.business_name,
                                       name=client_name)
        return await self._reply(prompt, fallback, fallback)

    async def close(self) -> None:
        await self._client.aclose()
