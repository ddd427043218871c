"""
Tests for provider selection and the static market context provider
"""
import pytest

from config import AIConfig
from agents.providers import (
    AnthropicProvider,
    OpenAIProvider,
    StaticMarketContextProvider,
    build_ai_provider,
)


class TestBuildAIProvider:

    def test_no_keys_means_no_provider(self):
        assert build_ai_provider(AIConfig(anthropic_api_key=None, openai_api_key=None)) is None

    def test_configured_provider_wins(self):
        config = AIConfig(provider="openai", anthropic_api_key="sk-ant-test", openai_api_key="sk-test")

        assert isinstance(build_ai_provider(config), OpenAIProvider)

    def test_falls_back_to_available_key(self):
        config = AIConfig(provider="openai", anthropic_api_key="sk-ant-test", openai_api_key=None)

        provider = build_ai_provider(config)

        assert isinstance(provider, AnthropicProvider)
        assert provider.model == config.anthropic_model


class TestStaticMarketContext:

    @pytest.mark.asyncio
    async def test_filters_sector_performance(self):
        provider = StaticMarketContextProvider(
            volatility_index=28.0,
            sector_performance={"Technology": 1.2, "Energy": -0.4},
            sentiment="bearish",
        )

        context = await provider.get_market_context(sectors=["technology"])

        assert context.sector_performance == {"Technology": 1.2}
        assert context.volatility_index == 28.0
        assert context.sentiment == "bearish"

    @pytest.mark.asyncio
    async def test_no_sectors_returns_everything(self):
        provider = StaticMarketContextProvider(sector_performance={"Technology": 1.2, "Energy": -0.4})

        context = await provider.get_market_context()

        assert set(context.sector_performance) == {"Technology", "Energy"}
