"""
External Providers

AI text generation (Anthropic / OpenAI) and market context lookups.
Every failure is raised as ExternalProviderError so callers can fall back.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, List

import anthropic
import openai

from config import AIConfig
from exceptions import ExternalProviderError
from models.market import MarketContext

logger = logging.getLogger(__name__)


class AIProvider(ABC):
    """Text generation backend"""

    name = "ai"

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> str:
        """Return the model's text answer, or raise ExternalProviderError"""


class AnthropicProvider(AIProvider):
    """Anthropic Claude API"""

    name = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: float = 30.0):
        self.model = model
        # Retries are disabled; a failed call falls back instead
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> str:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ]
            )
        except anthropic.APIError as e:
            raise ExternalProviderError("Anthropic API error", provider=self.name, cause=e) from e

        text = "".join(block.text for block in message.content if getattr(block, "type", "") == "text")
        if not text:
            raise ExternalProviderError("Anthropic returned an empty response", provider=self.name)
        return text


class OpenAIProvider(AIProvider):
    """OpenAI chat completions API"""

    name = "openai"

    def __init__(self, api_key: str, model: str, timeout: float = 30.0):
        self.model = model
        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise ExternalProviderError("OpenAI API error", provider=self.name, cause=e) from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ExternalProviderError("OpenAI returned an empty response", provider=self.name)
        return text


def build_ai_provider(config: AIConfig) -> Optional[AIProvider]:
    """
    Build the configured provider.

    The configured provider wins when its key is set; otherwise whichever
    key is available is used. Returns None when no key is configured.
    """
    anthropic_provider = None
    openai_provider = None

    if config.anthropic_api_key:
        anthropic_provider = AnthropicProvider(config.anthropic_api_key, config.anthropic_model, config.timeout_seconds)
    if config.openai_api_key:
        openai_provider = OpenAIProvider(config.openai_api_key, config.openai_model, config.timeout_seconds)

    if config.provider == "openai" and openai_provider:
        return openai_provider
    provider = anthropic_provider or openai_provider
    if provider is None:
        logger.info("No AI provider key configured, running rule-based only")
    return provider


class MarketContextProvider(ABC):
    """Read-only market snapshot source"""

    @abstractmethod
    async def get_market_context(
        self,
        sectors: Optional[List[str]] = None,
        risk_tolerance: Optional[str] = None
    ) -> MarketContext:
        """Return a snapshot, or raise ExternalProviderError"""


class StaticMarketContextProvider(MarketContextProvider):
    """
    Serves a fixed snapshot, filtered to the requested sectors.

    Used by the CLI and tests; a live data feed plugs in behind the same
    interface.
    """

    def __init__(
        self,
        volatility_index: float = 20.0,
        sector_performance: Optional[Dict[str, float]] = None,
        sentiment: str = "neutral",
        relevant_news: Optional[List[str]] = None,
        key_insights: Optional[List[str]] = None
    ):
        self.volatility_index = volatility_index
        self.sector_performance = sector_performance or {}
        self.sentiment = sentiment
        self.relevant_news = relevant_news or []
        self.key_insights = key_insights or []

    async def get_market_context(
        self,
        sectors: Optional[List[str]] = None,
        risk_tolerance: Optional[str] = None
    ) -> MarketContext:
        performance = self.sector_performance
        if sectors:
            wanted = {s.lower() for s in sectors}
            performance = {k: v for k, v in performance.items() if k.lower() in wanted}

        return MarketContext(
            volatility_index=self.volatility_index,
            sector_performance=dict(performance),
            sentiment=self.sentiment,
            relevant_news=list(self.relevant_news),
            key_insights=list(self.key_insights),
        )
