"""
Text-generation providers.
"""

from typing import Any, Callable

from dossier.providers.anthropic import AnthropicProvider
from dossier.providers.base import LLMProvider
from dossier.providers.openai import OpenAIProvider

PROVIDERS: dict[str, Callable[..., LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


def create_provider(name: str, **kwargs: Any) -> LLMProvider:
    """
    Create a provider by name.

    Args:
        name: Registered provider name
        **kwargs: Passed to the provider constructor (api_key, base_url, ...)

    Raises:
        ValueError: If the name is not registered
    """
    if name not in PROVIDERS:
        raise ValueError(f"Unknown provider: {name}. Available: {', '.join(PROVIDERS)}")
    return PROVIDERS[name](**kwargs)


__all__ = [
    "LLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "PROVIDERS",
    "create_provider",
]
