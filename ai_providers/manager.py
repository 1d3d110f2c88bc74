"""
AI Provider Manager - builds providers from settings
"""

from typing import Dict, Optional, Type

from config.logging_config import get_logger

from .base import BaseAIProvider, AIProviderType, AIConfig
from .openai_provider import OpenAIProvider

logger = get_logger(__name__)


# Provider registry
PROVIDER_REGISTRY: Dict[AIProviderType, Type[BaseAIProvider]] = {
    AIProviderType.OPENAI: OpenAIProvider,
}


def create_provider(settings, model: Optional[str] = None) -> BaseAIProvider:
    """
    Create a provider from application settings.

    Args:
        settings: config.settings.Settings (or anything with the same fields)
        model: Override the configured model

    Returns:
        Uninitialized provider; it connects on first use

    Raises:
        ValueError: Unknown provider or missing API key
    """
    try:
        provider_type = AIProviderType(settings.provider.lower())
    except ValueError:
        raise ValueError(f"Unknown provider: {settings.provider}") from None

    config = AIConfig(
        api_key=settings.get_api_key(),
        model=model or settings.model,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        base_url=settings.openai_base_url,
    )

    provider = PROVIDER_REGISTRY[provider_type](config)
    logger.info(f"Provider ready: {provider_type.value} ({config.model})")
    return provider
