"""LLM provider factory/registry."""

from __future__ import annotations

import logging

from researchbench.config import AppConfig
from researchbench.infra.providers.anthropic import AnthropicProvider
from researchbench.infra.providers.base import LLMProvider
from researchbench.infra.providers.fallback import FallbackProvider
from researchbench.infra.providers.openrouter import OpenRouterProvider
from researchbench.models.provider import ProviderType

logger = logging.getLogger(__name__)


def _build_provider(provider_type: ProviderType, config: AppConfig) -> LLMProvider:
    """Build a single provider instance."""
    prov_config = config.providers.get(provider_type.value)
    if provider_type == ProviderType.ANTHROPIC:
        return AnthropicProvider(
            api_key=prov_config.api_key if prov_config else "",
            model=prov_config.default_model if prov_config else "",
        )
    elif provider_type == ProviderType.OPENROUTER:
        return OpenRouterProvider(
            api_key=prov_config.api_key if prov_config else "",
            model=prov_config.default_model if prov_config else "",
            base_url=prov_config.base_url if prov_config else "",
        )
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")


def get_provider(provider_type: ProviderType | str, config: AppConfig) -> LLMProvider:
    """Get an LLM provider instance by type, configured from AppConfig."""
    if isinstance(provider_type, str):
        provider_type = ProviderType(provider_type)
    return _build_provider(provider_type, config)


def get_provider_with_fallback(config: AppConfig, primary: str = "") -> LLMProvider:
    """Build a provider with automatic fallback through all configured providers.

    Tries the primary provider first, then falls back through any other
    providers that have API keys configured. Skips providers without keys.

    Args:
        config: App configuration.
        primary: Primary provider name (e.g. "openrouter"). If empty,
                 uses research.default_provider from config.

    Returns:
        A FallbackProvider wrapping all available providers, or a single
        provider if only one is available.
    """
    primary = primary or config.research.default_provider

    all_types = list(ProviderType)
    try:
        primary_type = ProviderType(primary)
    except ValueError:
        primary_type = ProviderType.ANTHROPIC

    ordered = [primary_type] + [t for t in all_types if t != primary_type]

    providers = []
    names = []
    for ptype in ordered:
        prov_config = config.providers.get(ptype.value)
        if prov_config and prov_config.api_key:
            providers.append(_build_provider(ptype, config))
            names.append(ptype.value)
        else:
            logger.debug("Skipping %s: no API key configured", ptype.value)

    if not providers:
        raise RuntimeError("No LLM providers configured. Set at least one API key.")

    if len(providers) == 1:
        return providers[0]

    logger.info("Fallback chain: %s", " -> ".join(names))
    return FallbackProvider(providers, names)
