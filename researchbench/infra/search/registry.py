"""Search provider factory."""

from __future__ import annotations

from researchbench.config import AppConfig
from researchbench.infra.search.base import SearchProvider
from researchbench.infra.search.brave import BraveSearchProvider


def get_search_provider(config: AppConfig, name: str = "") -> SearchProvider:
    """Get a search provider instance by name, configured from AppConfig."""
    name = name or config.research.default_search
    if name == "brave":
        brave_config = config.search.get("brave")
        api_key = brave_config.api_key if brave_config else ""
        return BraveSearchProvider(api_key=api_key)
    raise ValueError(f"Unknown search provider: {name}")
