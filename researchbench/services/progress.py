"""Job progress tracking and fan-out to progress sinks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol, runtime_checkable

from researchbench.models.job import JobProgress
from researchbench.models.progress import ProgressEvent

logger = logging.getLogger(__name__)

PHASE_QUERIES = "queries"
PHASE_SEARCH = "search"
PHASE_ANALYSIS = "analysis"
PHASE_ENRICHMENT = "enrichment"
PHASE_SYNTHESIS = "synthesis"

# Share of the overall percentage each phase accounts for; sums to 100.
PHASE_WEIGHTS = {
    PHASE_QUERIES: 10,
    PHASE_SEARCH: 20,
    PHASE_ANALYSIS: 40,
    PHASE_ENRICHMENT: 5,
    PHASE_SYNTHESIS: 25,
}


@runtime_checkable
class ProgressSink(Protocol):
    async def publish(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressSink:
    """Writes every progress event to the log."""

    async def publish(self, event: ProgressEvent) -> None:
        logger.info(
            "Job %s: %.1f%% (%s) %s",
            event.job_id, event.percentage, event.current_phase, event.message,
        )


class ProgressBroadcaster:
    """Fans progress events out to per-job subscriber queues.

    Slow subscribers lose their oldest events rather than blocking the job.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[job_id].append(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(job_id, None)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))

    async def publish(self, event: ProgressEvent) -> None:
        for queue in list(self._subscribers.get(event.job_id, [])):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)


class ProgressTracker:
    """Computes weighted job progress and emits it to the store and sinks."""

    def __init__(
        self,
        job_id: str,
        sinks: Iterable[ProgressSink] = (),
        on_progress: Callable[[JobProgress], Awaitable[None]] | None = None,
        initial: JobProgress | None = None,
    ) -> None:
        self.job_id = job_id
        self._sinks = list(sinks)
        self._on_progress = on_progress
        self._progress = initial or JobProgress()
        self._completed: list[str] = list(self._progress.phases_completed)
        self._started = time.monotonic()
        self._start_percentage = self._progress.percentage

    @property
    def progress(self) -> JobProgress:
        return self._progress

    def _percentage(self, phase: str, fraction: float) -> float:
        done = sum(PHASE_WEIGHTS.get(p, 0) for p in self._completed)
        if phase not in self._completed:
            done += PHASE_WEIGHTS.get(phase, 0) * max(0.0, min(1.0, fraction))
        return round(min(100.0, done), 2)

    def _eta(self, percentage: float) -> float | None:
        gained = percentage - self._start_percentage
        if gained <= 0:
            return None
        elapsed = time.monotonic() - self._started
        return round(elapsed / gained * (100.0 - percentage), 1)

    async def start_phase(self, phase: str, message: str = "") -> None:
        await self._emit(phase, 0.0, message=message or f"Starting {phase}")

    async def advance(
        self,
        phase: str,
        done: int,
        total: int,
        *,
        processed_urls: int | None = None,
        total_urls: int | None = None,
        iteration: int | None = None,
        message: str = "",
    ) -> None:
        fraction = done / total if total else 0.0
        await self._emit(
            phase,
            fraction,
            processed_urls=processed_urls,
            total_urls=total_urls,
            iteration=iteration,
            message=message,
        )

    async def complete_phase(self, phase: str) -> None:
        if phase not in self._completed:
            self._completed.append(phase)
        await self._emit(phase, 1.0, message=f"Completed {phase}")

    async def _emit(
        self,
        phase: str,
        fraction: float,
        *,
        processed_urls: int | None = None,
        total_urls: int | None = None,
        iteration: int | None = None,
        message: str = "",
    ) -> None:
        update = JobProgress(
            current_iteration=iteration or 0,
            processed_urls=processed_urls or 0,
            total_urls=total_urls or 0,
            current_phase=phase,
            percentage=self._percentage(phase, fraction),
            phases_completed=tuple(self._completed),
        )
        self._progress = self._progress.advanced(update)
        if self._on_progress is not None:
            await self._on_progress(self._progress)

        event = ProgressEvent(
            job_id=self.job_id,
            percentage=self._progress.percentage,
            current_phase=self._progress.current_phase,
            phases_completed=self._progress.phases_completed,
            estimated_time_remaining=self._eta(self._progress.percentage),
            processed_urls=self._progress.processed_urls,
            total_urls=self._progress.total_urls,
            message=message,
        )
        for sink in self._sinks:
            try:
                await sink.publish(event)
            except Exception:
                logger.exception("Progress sink %r failed for job %s", sink, self.job_id)
