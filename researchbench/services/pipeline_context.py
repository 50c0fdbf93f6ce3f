"""Shared state threaded through the stage functions of one job run."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from researchbench.config import AppConfig
from researchbench.infra.capture.base import ContentCapture
from researchbench.infra.providers.base import LLMProvider
from researchbench.infra.search.base import SearchProvider
from researchbench.models.job import JobConfig, StageCursor
from researchbench.models.provider import LLMConfig, ResponseFormat
from researchbench.services.control import JobControl
from researchbench.services.external import ExternalCaller, ExternalPolicy
from researchbench.services.progress import ProgressTracker


@dataclass(frozen=True)
class Capabilities:
    """The external collaborators a job consumes."""

    llm: LLMProvider
    search: SearchProvider
    capture: ContentCapture


@dataclass(frozen=True)
class PipelineSettings:
    model: str = ""
    temperature: float = 0.3
    max_tokens: int = 2048
    max_content_chars: int = 30000
    synthesis_batch_size: int = 3
    policy: ExternalPolicy = field(default_factory=ExternalPolicy)

    @classmethod
    def from_app_config(cls, config: AppConfig) -> PipelineSettings:
        return cls(
            model=config.llm.model,
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
            max_content_chars=config.capture.max_content_chars,
            synthesis_batch_size=config.synthesis.batch_size,
            policy=ExternalPolicy(
                timeout_seconds=config.external.timeout_seconds,
                max_retries=config.external.max_retries,
                backoff_seconds=config.external.backoff_seconds,
                cost_per_1k_input=config.llm.cost_per_1k_input,
                cost_per_1k_output=config.llm.cost_per_1k_output,
            ),
        )

    def llm_config(self, response_format: ResponseFormat = ResponseFormat.TEXT) -> LLMConfig:
        return LLMConfig(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format=response_format,
        )


@dataclass
class PipelineContext:
    job_id: str
    topic: str
    config: JobConfig
    capabilities: Capabilities
    control: JobControl
    progress: ProgressTracker
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    cursor: StageCursor = field(default_factory=StageCursor)
    save_cursor: Callable[[StageCursor], Awaitable[None]] | None = None

    def new_caller(self) -> ExternalCaller:
        """A fresh caller, so each phase reports its own statistics."""
        return ExternalCaller(self.control, self.settings.policy)

    async def commit(self, cursor: StageCursor) -> None:
        """Record a fully materialized stage position."""
        self.cursor = cursor
        if self.save_cursor is not None:
            await self.save_cursor(cursor)
