"""
Base text-generation provider interface.
"""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """
    Abstract base class for text-generation providers.
    """

    name: str = "llm"
    default_model: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1500,
        **kwargs: Any
    ) -> dict[str, Any]:
        """
        Get a completion from the LLM.

        Args:
            messages: List of messages in API format (system, user, assistant)
            model: Model identifier, the provider default when omitted
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional provider-specific options

        Returns:
            Dictionary with 'content', 'usage', 'finish_reason'
        """
        pass

    @abstractmethod
    def get_available_models(self) -> list[str]:
        """Get list of available models."""
        pass

    def count_tokens(self, text: str) -> int:
        """Estimate token count for text (simple implementation)."""
        # Simple estimation: ~4 characters per token
        return len(text) // 4

    def describe(self) -> dict[str, Any]:
        return {"provider": self.name, "model": self.default_model}
