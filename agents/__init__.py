"""
AI Agents Module

Voice-preserving sharpening, individual personalization and the
orchestrator that runs them in batches.
"""
from .base_agent import BaseAgent, AgentStatus
from .providers import (
    AIProvider,
    AnthropicProvider,
    OpenAIProvider,
    MarketContextProvider,
    StaticMarketContextProvider,
    build_ai_provider,
)
from .batching import BatchResult, BatchError
from .sharpening_agent import SharpeningAgent
from .personalization_agent import PersonalizationAgent
from .orchestrator import PersonalizationOrchestrator

__all__ = [
    "BaseAgent",
    "AgentStatus",
    "AIProvider",
    "AnthropicProvider",
    "OpenAIProvider",
    "MarketContextProvider",
    "StaticMarketContextProvider",
    "build_ai_provider",
    "BatchResult",
    "BatchError",
    "SharpeningAgent",
    "PersonalizationAgent",
    "PersonalizationOrchestrator",
]
