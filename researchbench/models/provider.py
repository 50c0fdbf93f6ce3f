"""LLM provider domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProviderType(str, Enum):
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


class ResponseFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class LLMMessage:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for an LLM completion request."""

    model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.3
    response_format: ResponseFormat = ResponseFormat.TEXT
    stop_sequences: list[str] | None = None


@dataclass(frozen=True)
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str = ""
    finish_reason: str = ""
    usage: dict = field(default_factory=dict)

    @property
    def input_tokens(self) -> int:
        return int(self.usage.get("input_tokens", 0))

    @property
    def output_tokens(self) -> int:
        return int(self.usage.get("output_tokens", 0))
