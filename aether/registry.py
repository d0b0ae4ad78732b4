"""
Provider registry - maps a configured provider name to an adapter instance.

Usage:
    settings = load_settings()
    provider = create_provider(settings)
    async for fragment in provider.stream_completion(request):
        ...

The returned instance is read-only after construction and may serve
several requests concurrently; each request owns its own decoder session.
"""

import logging
from typing import TYPE_CHECKING

from aether.config import Settings
from aether.errors import ConfigurationError

if TYPE_CHECKING:
    from aether.adapters.base import CompletionProvider

logger = logging.getLogger(__name__)


def create_provider(settings: Settings) -> "CompletionProvider":
    """
    Build the adapter named by settings.provider.

    Cloud adapters read their credential from the environment.

    Raises:
        ConfigurationError: Unknown provider, or a missing API key variable
    """
    name = settings.provider
    timeouts = {
        "connect_timeout": settings.connect_timeout,
        "read_timeout": settings.read_timeout,
    }
    logger.debug("Creating provider %s (model=%s)", name, settings.model)

    if name == "ollama":
        from aether.adapters.ollama import OllamaAdapter
        return OllamaAdapter(base_url=settings.ollama_base_url, model=settings.model, **timeouts)

    if name == "openai":
        from aether.adapters.openai import OpenAIAdapter
        return OpenAIAdapter.from_env(settings.model, base_url=settings.openai_base_url, **timeouts)

    if name == "anthropic":
        from aether.adapters.anthropic import AnthropicAdapter
        return AnthropicAdapter.from_env(settings.model, **timeouts)

    if name == "gemini":
        from aether.adapters.gemini import GeminiAdapter
        return GeminiAdapter.from_env(settings.model, **timeouts)

    if name == "mock":
        from aether.adapters.mock import MockAdapter
        return MockAdapter()

    raise ConfigurationError(f"Unknown provider '{name}'", variable="AETHER_PROVIDER")
