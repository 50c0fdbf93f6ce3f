"""The search capability a research job queries for candidate pages."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from researchbench.models.research import SearchResult


@runtime_checkable
class SearchProvider(Protocol):
    """A web search backend.

    `search` returns at most `max_results` hits ordered best-first, each with
    a `score` in [0, 1]. Backend or network trouble surfaces as
    TransientExternalError so the caller can retry it; a query with no hits
    is an empty list, not an error.
    """

    async def search(self, query: str, max_results: int = 10) -> list[SearchResult]: ...
