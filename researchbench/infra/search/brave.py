"""Brave Search provider."""

from __future__ import annotations

import logging

import httpx

from researchbench.errors import TransientExternalError
from researchbench.models.research import SearchResult

logger = logging.getLogger(__name__)

BRAVE_API_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MAX_COUNT = 20


class BraveSearchProvider:
    """Web search provider using the Brave Search API."""

    def __init__(self, api_key: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            headers={
                "Accept": "application/json",
                "Accept-Encoding": "gzip",
                "X-Subscription-Token": api_key,
            },
            timeout=30.0,
            transport=transport,
        )

    async def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        """Execute a search via Brave Search API."""
        params = {
            "q": query,
            "count": min(max_results, BRAVE_MAX_COUNT),
            "extra_snippets": True,
        }

        try:
            response = await self._client.get(BRAVE_API_URL, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("Brave search failed: %s", e)
            raise TransientExternalError(f"Brave search failed: {e}", operation="search") from e

        items = data.get("web", {}).get("results", [])
        results = []
        for rank, item in enumerate(items):
            url = item.get("url", "")
            if not url:
                continue
            # Combine description with extra snippets for richer content
            snippet = item.get("description", "")
            extra = item.get("extra_snippets", [])
            if extra:
                snippet = snippet + "\n" + "\n".join(extra)

            results.append(SearchResult(
                url=url,
                title=item.get("title", ""),
                snippet=snippet,
                engine="brave",
                score=round(1.0 - rank / max(len(items), 1), 4),
            ))

        return results[:max_results]

    async def close(self) -> None:
        await self._client.aclose()
