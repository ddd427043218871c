"""
Base Agent Framework

Provides the foundation for the AI-backed personalization agents.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Dict, List, Any
from enum import Enum

from config import AIConfig, get_config
from exceptions import ExternalProviderError
from agents.providers import AIProvider, build_ai_provider

logger = logging.getLogger(__name__)


class AgentStatus(Enum):
    """Agent execution status"""
    IDLE = "idle"
    THINKING = "thinking"
    COMPLETED = "completed"
    ERROR = "error"


class BaseAgent(ABC):
    """
    Base class for AI agents.

    Provides:
    - AI provider integration (Anthropic/OpenAI)
    - A single failure type for callers to fall back on
    - Execution tracking
    """

    def __init__(
        self,
        ai_provider: Optional[AIProvider] = None,
        config: Optional[AIConfig] = None,
        name: str = "BaseAgent",
        description: str = "",
        use_ai: bool = True
    ):
        self.config = config or get_config().ai
        self.name = name
        self.description = description
        self.use_ai = use_ai
        self.status = AgentStatus.IDLE

        if ai_provider is None and use_ai:
            ai_provider = build_ai_provider(self.config)
        self.ai_provider = ai_provider

        # Execution history
        self.execution_history: List[Dict] = []

    @property
    def ai_available(self) -> bool:
        return self.use_ai and self.ai_provider is not None

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Get the default system prompt for this agent"""
        pass

    async def _call_ai(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Call the AI provider.

        Args:
            prompt: The user prompt
            system_prompt: Optional system prompt override
            temperature: Optional sampling temperature override
            max_tokens: Optional response length override

        Returns:
            AI response text

        Raises:
            ExternalProviderError: if AI is unavailable or the call fails
        """
        if not self.ai_available:
            raise ExternalProviderError("AI provider not configured")

        self.status = AgentStatus.THINKING
        try:
            response = await self.ai_provider.generate(
                system_prompt or self.get_system_prompt(),
                prompt,
                temperature=self.config.temperature if temperature is None else temperature,
                max_tokens=max_tokens or self.config.max_tokens,
            )
        except ExternalProviderError:
            self.status = AgentStatus.ERROR
            raise
        except Exception as e:
            # Anything a custom provider lets escape is still a provider failure
            self.status = AgentStatus.ERROR
            raise ExternalProviderError(
                f"AI call failed in {self.name}", provider=getattr(self.ai_provider, "name", "ai"), cause=e
            ) from e

        self.status = AgentStatus.COMPLETED
        return response

    def _log_execution(
        self,
        task: str,
        result: Dict[str, Any],
        context: Optional[Dict] = None
    ):
        """Log agent execution for history"""
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "task": task,
            "context": context,
            "result": result,
        }
        self.execution_history.append(entry)

        # Keep only last 100 executions
        if len(self.execution_history) > 100:
            self.execution_history = self.execution_history[-100:]

    def get_status(self) -> Dict[str, Any]:
        """Get agent status"""
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "ai_available": self.ai_available,
            "ai_provider": getattr(self.ai_provider, "name", None) if self.ai_available else None,
            "executions": len(self.execution_history),
        }
