"""
AI Providers Package

Supports:
- OpenAI GPT (gpt-4o-mini, gpt-4o, etc.)

Usage:
    from ai_providers import create_provider, AIMessage
    from config.settings import settings

    provider = create_provider(settings)
    response = await provider.complete(
        [AIMessage(role="user", content="SELECT 1 FROM DUAL")],
        system_prompt="Convert Oracle SQL to Snowflake.",
    )
    print(response.content)
"""

from .base import (
    BaseAIProvider,
    AIProviderType,
    AIMessage,
    AIResponse,
    AIConfig
)

from .openai_provider import OpenAIProvider

from .manager import (
    PROVIDER_REGISTRY,
    create_provider,
)

__all__ = [
    # Base
    "BaseAIProvider",
    "AIProviderType",
    "AIMessage",
    "AIResponse",
    "AIConfig",
    # Providers
    "OpenAIProvider",
    # Manager
    "PROVIDER_REGISTRY",
    "create_provider",
]
