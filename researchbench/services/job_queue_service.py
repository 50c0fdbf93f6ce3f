"""Job queue: priority scheduling, a bounded worker pool and job control."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import replace
from functools import partial

from researchbench.config import ResearchDefaults
from researchbench.errors import (
    JobCancelled,
    JobSuspended,
    StateConflict,
    ValidationError,
)
from researchbench.models.job import JobConfig, JobPriority, JobStatus, ResearchJob
from researchbench.models.report import ReportExport, ReportFormat
from researchbench.models.research import ResearchOutput
from researchbench.services.control import JobControl
from researchbench.services.job_store import JobStore
from researchbench.services.orchestrator import (
    OrchestratorResult,
    OrchestratorStatus,
    ResearchOrchestrator,
)
from researchbench.services.pipeline_context import (
    Capabilities,
    PipelineContext,
    PipelineSettings,
)
from researchbench.services.progress import ProgressSink, ProgressTracker
from researchbench.services.report_service import ReportService
from researchbench.services.research_pipeline import research_output_from_cursor

logger = logging.getLogger(__name__)

# Resumed and interrupted jobs jump ahead of never-started ones.
RESUME_LANE = 0
NEW_LANE = 1

ACTIONS = ("pause", "resume", "cancel")


def _settled(job: ResearchJob) -> bool:
    return job.status.is_terminal or job.status == JobStatus.PAUSED


class JobQueueService:
    """Runs research jobs on an asyncio worker pool.

    Jobs are dequeued by priority, then submission order, and at most
    `max_concurrent_jobs` run at once. A failure inside one job marks only
    that job failed. Pausing releases the job's slot; resuming re-enqueues it
    to continue from its persisted stage cursor.
    """

    def __init__(
        self,
        store: JobStore,
        orchestrator: ResearchOrchestrator,
        report_service: ReportService,
        capabilities: Capabilities,
        settings: PipelineSettings | None = None,
        defaults: ResearchDefaults | None = None,
        max_concurrent_jobs: int = 5,
        sinks: tuple[ProgressSink, ...] = (),
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._reports = report_service
        self._capabilities = capabilities
        self._settings = settings or PipelineSettings()
        self._defaults = defaults or ResearchDefaults()
        self._max_concurrent = max(1, max_concurrent_jobs)
        self._sinks = tuple(sinks)
        self._heap: list[tuple[int, int, int, str]] = []
        self._seq = itertools.count()
        self._queued: set[str] = set()
        self._active: dict[str, asyncio.Task] = {}
        self._controls: dict[str, JobControl] = {}
        self._running = False

    @property
    def active_count(self) -> int:
        return len(self._active)

    # --- Submission and queries ---

    async def add_job(
        self,
        topic: str,
        config: JobConfig | dict | None = None,
        priority: JobPriority | int = JobPriority.NORMAL,
        owner_id: str = "",
    ) -> ResearchJob:
        """Create a pending job and enqueue it. Returns without waiting for it to run."""
        if not topic or not topic.strip():
            raise ValidationError("Research topic cannot be empty")
        if not isinstance(config, JobConfig):
            config = self._defaults.to_job_config(config)
        try:
            priority = JobPriority(priority)
        except ValueError as e:
            raise ValidationError(f"Invalid priority: {priority}") from e

        job = ResearchJob(
            topic=topic.strip(), config=config, priority=priority, owner_id=owner_id
        )
        await self._store.add(job)
        logger.info("Job %s queued: %r (priority %s)", job.id, job.topic, priority.name)
        self._enqueue(job, NEW_LANE)
        self._dispatch()
        return job

    async def submit_job(
        self, topic: str, config: JobConfig | dict | None = None, **kwargs
    ) -> str:
        job = await self.add_job(topic, config, **kwargs)
        return job.id

    def get_job(self, job_id: str) -> ResearchJob | None:
        return self._store.get(job_id)

    def get_all_jobs(self) -> list[ResearchJob]:
        return self._store.all()

    def list_jobs(
        self, owner_id: str | None = None, status: JobStatus | None = None
    ) -> list[ResearchJob]:
        if owner_id is not None:
            return self._store.list_by_owner(owner_id, status)
        return [j for j in self._store.all() if status is None or j.status == status]

    def get_research_output(self, job_id: str) -> ResearchOutput | None:
        """Research gathered by a job, available even if its synthesis failed."""
        job = self._store.require(job_id)
        if not job.cursor.research_complete:
            return None
        return research_output_from_cursor(job.topic, job.cursor)

    async def export_report(
        self, job_id: str, format: ReportFormat | str | None = None
    ) -> ReportExport:
        return await self._reports.export(self._store.require(job_id), format)

    # --- Control ---

    async def pause_job(self, job_id: str) -> bool:
        if self._store.get(job_id) is None:
            return False
        job = await self._store.transition(job_id, {JobStatus.RUNNING}, JobStatus.PAUSED)
        if job is None:
            return False
        control = self._controls.get(job_id)
        if control is not None:
            control.request_pause()
        return True

    async def resume_job(self, job_id: str) -> bool:
        if self._store.get(job_id) is None:
            return False
        job = await self._store.transition(job_id, {JobStatus.PAUSED}, JobStatus.RUNNING)
        if job is None:
            return False
        control = self._controls.get(job_id)
        if control is not None:
            # Still winding down towards its checkpoint; let it carry on.
            control.clear_pause()
        else:
            self._enqueue(job, RESUME_LANE)
            self._dispatch()
        return True

    async def cancel_job(self, job_id: str) -> bool:
        if self._store.get(job_id) is None:
            return False
        job = await self._store.transition(
            job_id,
            {JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED},
            JobStatus.CANCELLED,
        )
        if job is None:
            return False
        control = self._controls.get(job_id)
        if control is not None:
            control.request_cancel()
        return True

    async def mutate_job(self, job_id: str, action: str) -> ResearchJob:
        """Apply a control action, raising instead of returning False."""
        handlers = {
            "pause": self.pause_job,
            "resume": self.resume_job,
            "cancel": self.cancel_job,
        }
        if action not in handlers:
            raise ValidationError(f"Unknown action {action!r}; expected one of {ACTIONS}")
        self._store.require(job_id)
        if not await handlers[action](job_id):
            raise StateConflict(job_id, action, self._store.require(job_id).status.value)
        return self._store.require(job_id)

    # --- Pool lifecycle ---

    def start(self) -> None:
        self._running = True
        self._dispatch()

    async def stop(self) -> None:
        """Cancel in-flight work; interrupted jobs stay running and resume on load."""
        self._running = False
        tasks = list(self._active.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def load(self) -> list[ResearchJob]:
        """Restore persisted jobs; pending and interrupted ones are re-enqueued."""
        jobs = await self._store.load()
        for job in jobs:
            if job.status == JobStatus.RUNNING:
                self._enqueue(job, RESUME_LANE)
            elif job.status == JobStatus.PENDING:
                self._enqueue(job, NEW_LANE)
        self._dispatch()
        return jobs

    async def wait_for_job(self, job_id: str, timeout: float | None = None) -> ResearchJob:
        """Wait until the job reaches a terminal status."""
        waiter = self._store.wait_for(job_id, lambda j: j.status.is_terminal)
        return await asyncio.wait_for(waiter, timeout)

    async def drain(self) -> None:
        """Wait until every job is terminal or paused and no worker is busy."""
        while True:
            for job in self._store.all():
                await self._store.wait_for(job.id, _settled)
            tasks = list(self._active.values())
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Scheduling ---

    def _enqueue(self, job: ResearchJob, lane: int) -> None:
        if job.id in self._queued or job.id in self._active:
            return
        heapq.heappush(self._heap, (lane, -int(job.priority), next(self._seq), job.id))
        self._queued.add(job.id)

    def _dispatch(self) -> None:
        if not self._running:
            return
        while self._heap and len(self._active) < self._max_concurrent:
            _, _, _, job_id = heapq.heappop(self._heap)
            self._queued.discard(job_id)
            job = self._store.get(job_id)
            if job is None or job.status not in (JobStatus.PENDING, JobStatus.RUNNING):
                continue
            self._active[job_id] = asyncio.create_task(
                self._run_job(job_id), name=f"research-job-{job_id}"
            )

    async def _run_job(self, job_id: str) -> None:
        suspended = False
        try:
            job = await self._store.transition(
                job_id, {JobStatus.PENDING, JobStatus.RUNNING}, JobStatus.RUNNING
            )
            if job is None:
                return
            control = JobControl(job_id)
            self._controls[job_id] = control
            ctx = PipelineContext(
                job_id=job_id,
                topic=job.topic,
                config=job.config,
                capabilities=self._capabilities,
                control=control,
                progress=ProgressTracker(
                    job_id,
                    self._sinks,
                    on_progress=partial(self._store.update_progress, job_id),
                    initial=job.progress,
                ),
                settings=self._settings,
                cursor=job.cursor,
                save_cursor=partial(self._store.save_cursor, job_id),
            )
            logger.info("Job %s started (%s)", job_id, job.cursor.phase.value or "fresh")
            result = await self._orchestrator.run(ctx)
            await self._finish(job_id, result, control)
        except JobSuspended:
            suspended = True
            logger.info("Job %s suspended at checkpoint", job_id)
        except JobCancelled:
            logger.info("Job %s stopped after cancellation", job_id)
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            await self._fail(job_id, f"{type(e).__name__}: {e}")
        finally:
            self._active.pop(job_id, None)
            self._controls.pop(job_id, None)
            job = self._store.get(job_id)
            # Resumed between the pause request and the checkpoint that honored it.
            if suspended and job is not None and job.status == JobStatus.RUNNING:
                self._enqueue(job, RESUME_LANE)
            self._dispatch()

    async def _finish(
        self, job_id: str, result: OrchestratorResult, control: JobControl
    ) -> None:
        if control.cancelled:
            raise JobCancelled(f"Job {job_id} was cancelled")

        if result.status == OrchestratorStatus.SUCCESS and result.report is not None:
            report = await self._reports.save(result.report)
            done = await self._store.transition(
                job_id,
                {JobStatus.RUNNING, JobStatus.PAUSED},
                JobStatus.COMPLETED,
                report_id=report.id,
            )
            if done is None:
                # Cancelled while the report was being stored.
                await self._reports.discard(report.id)
            return

        if result.status == OrchestratorStatus.PARTIAL and result.research is not None:
            job = self._store.require(job_id)
            await self._store.save_cursor(
                job_id, replace(job.cursor, sources=result.research.sources)
            )
        await self._fail(job_id, result.error or "Research failed")

    async def _fail(self, job_id: str, message: str) -> None:
        job = await self._store.transition(
            job_id,
            {JobStatus.RUNNING, JobStatus.PAUSED},
            JobStatus.FAILED,
            error_message=message,
        )
        if job is not None:
            logger.warning("Job %s failed: %s", job_id, message)
