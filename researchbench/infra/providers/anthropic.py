"""Anthropic LLM provider using the anthropic SDK."""

from __future__ import annotations

import logging

import anthropic

from researchbench.errors import TransientExternalError
from researchbench.models.provider import LLMConfig, LLMMessage, LLMResponse, ResponseFormat

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

JSON_INSTRUCTION = (
    "Respond with a single valid JSON value only. Do not wrap it in markdown "
    "fences and do not add commentary."
)


class AnthropicProvider:
    """LLM provider using the Anthropic API."""

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key or None)
        self._default_model = model or DEFAULT_MODEL

    def _convert_messages(
        self, messages: list[LLMMessage]
    ) -> tuple[str | None, list[dict]]:
        """Convert LLMMessages to Anthropic format, extracting system prompt."""
        system_prompt = None
        converted = []
        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return system_prompt, converted

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion using the Anthropic API."""
        config = config or LLMConfig()
        model = config.model or self._default_model
        system_prompt, converted = self._convert_messages(messages)
        if config.response_format == ResponseFormat.JSON:
            system_prompt = f"{system_prompt}\n\n{JSON_INSTRUCTION}" if system_prompt else JSON_INSTRUCTION

        kwargs: dict = {
            "model": model,
            "max_tokens": config.max_tokens,
            "messages": converted,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.stop_sequences:
            kwargs["stop_sequences"] = config.stop_sequences

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise TransientExternalError(f"Anthropic request failed: {e}", operation="complete") from e

        content_text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=content_text,
            model=response.model,
            finish_reason=response.stop_reason or "",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
