"""The text-completion capability used for query planning, summaries and drafting."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from researchbench.models.provider import LLMConfig, LLMMessage, LLMResponse


@runtime_checkable
class LLMProvider(Protocol):
    """A chat model answering one system-plus-user exchange per call.

    Token usage is reported on the response so the pipeline can tally cost;
    rate limits and outages raise TransientExternalError.
    """

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse: ...
