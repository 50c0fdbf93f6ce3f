"""Timeout, bounded retry and accounting around every external call."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from researchbench.errors import JobCancelled, JobSuspended, TransientExternalError
from researchbench.infra.capture.base import ContentCapture
from researchbench.infra.providers.base import LLMProvider
from researchbench.infra.search.base import SearchProvider
from researchbench.models.provider import LLMConfig, LLMMessage, LLMResponse
from researchbench.models.research import (
    CaptureMetadata,
    CaptureResult,
    ExtractedText,
    PipelineStats,
    SearchResult,
)
from researchbench.services.control import JobControl

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class _Skipped:
    def __repr__(self) -> str:
        return "SKIPPED"


# Marks an item that never ran because a pause or cancel landed first.
SKIPPED = _Skipped()


@dataclass(frozen=True)
class ExternalPolicy:
    timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_seconds: float = 1.0
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0


class ExternalCaller:
    """Runs one phase's external calls for one job and tallies their cost.

    Every call checks the job's control flags first, is bounded by the
    policy timeout and is retried on transient failure with linear backoff.
    A result that arrives after the job was cancelled is discarded.
    """

    def __init__(self, control: JobControl, policy: ExternalPolicy | None = None) -> None:
        self._control = control
        self._policy = policy or ExternalPolicy()
        self._started = time.monotonic()
        self.llm_calls = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.cost = 0.0
        self.searches = 0
        self.captures = 0
        self.retries = 0
        self.failures = 0

    async def call(self, operation: str, func: Callable[..., Awaitable[R]], *args, **kwargs) -> R:
        policy = self._policy
        attempt = 0
        while True:
            self._control.checkpoint()
            try:
                result = await asyncio.wait_for(func(*args, **kwargs), policy.timeout_seconds)
            except (TransientExternalError, asyncio.TimeoutError) as e:
                if attempt >= policy.max_retries:
                    self.failures += 1
                    logger.warning(
                        "%s failed after %d attempt(s): %s",
                        operation, attempt + 1, str(e) or "timeout",
                    )
                    if isinstance(e, TransientExternalError):
                        raise
                    raise TransientExternalError(
                        f"{operation} timed out after {policy.timeout_seconds}s",
                        operation=operation,
                    ) from e
                attempt += 1
                self.retries += 1
                logger.debug("Retrying %s (attempt %d)", operation, attempt + 1)
                await asyncio.sleep(policy.backoff_seconds * attempt)
                continue
            if self._control.cancelled:
                raise JobCancelled(f"Job {self._control.job_id} was cancelled during {operation}")
            return result

    async def complete(
        self, llm: LLMProvider, messages: list[LLMMessage], config: LLMConfig
    ) -> LLMResponse:
        response = await self.call("complete", llm.complete, messages, config)
        self.llm_calls += 1
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.cost += (
            response.input_tokens / 1000 * self._policy.cost_per_1k_input
            + response.output_tokens / 1000 * self._policy.cost_per_1k_output
        )
        return response

    async def search(self, search: SearchProvider, query: str, max_results: int) -> list[SearchResult]:
        results = await self.call("search", search.search, query, max_results)
        self.searches += 1
        return results

    async def capture(self, capture: ContentCapture, url: str) -> CaptureResult:
        result = await self.call("capture", capture.capture, url)
        self.captures += 1
        return result

    async def extract_text(self, capture: ContentCapture, capture_id: str) -> ExtractedText:
        return await self.call("extract_text", capture.extract_text, capture_id)

    async def get_metadata(self, capture: ContentCapture, capture_id: str) -> CaptureMetadata:
        return await self.call("get_metadata", capture.get_metadata, capture_id)

    def stats(self) -> PipelineStats:
        return PipelineStats(
            duration_seconds=time.monotonic() - self._started,
            llm_calls=self.llm_calls,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost=round(self.cost, 6),
            searches=self.searches,
            captures=self.captures,
            retries=self.retries,
            failures=self.failures,
        )


async def bounded_map(
    items: Sequence[T], func: Callable[[T], Awaitable[R]], limit: int
) -> list[R | None | _Skipped]:
    """Run `func` over `items` with at most `limit` in flight, preserving order.

    A transient failure yields None for that item; an item interrupted by a
    pause or cancel yields SKIPPED. Any other exception is re-raised once
    every item has settled, so finished siblings are never orphaned.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(item: T):
        async with semaphore:
            return await func(item)

    outcomes = await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)

    results: list = []
    unexpected: BaseException | None = None
    for outcome in outcomes:
        if isinstance(outcome, (JobSuspended, JobCancelled)):
            results.append(SKIPPED)
        elif isinstance(outcome, TransientExternalError):
            results.append(None)
        elif isinstance(outcome, BaseException):
            unexpected = unexpected or outcome
            results.append(None)
        else:
            results.append(outcome)
    if unexpected is not None:
        raise unexpected
    return results


async def gather_in_batches(
    items: Sequence[T], func: Callable[[T], Awaitable[R]], batch_size: int
) -> list[R | None | _Skipped]:
    """Run `func` in consecutive batches; output order equals input order."""
    size = max(1, batch_size)
    results: list = []
    for start in range(0, len(items), size):
        results.extend(await bounded_map(items[start:start + size], func, size))
    return results
