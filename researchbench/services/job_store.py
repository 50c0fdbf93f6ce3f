"""Job registry: the single shared mutable state of the job queue."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from researchbench.errors import JobNotFound
from researchbench.infra.db.jobs import JobRepo
from researchbench.models.job import JobProgress, JobStatus, ResearchJob, StageCursor

logger = logging.getLogger(__name__)


class JobStore:
    """Holds the current snapshot of every job.

    Every change is a compare-and-set performed under one lock, persisted to
    the repo when one is configured, and announced to `wait_for` callers.
    Readers only ever receive immutable `ResearchJob` snapshots.
    """

    def __init__(self, repo: JobRepo | None = None) -> None:
        self._repo = repo
        self._jobs: dict[str, ResearchJob] = {}
        self._changed = asyncio.Condition()

    async def add(self, job: ResearchJob) -> ResearchJob:
        async with self._changed:
            self._jobs[job.id] = job
            if self._repo is not None:
                await self._repo.save(job)
            self._changed.notify_all()
        return job

    def get(self, job_id: str) -> ResearchJob | None:
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> ResearchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def all(self) -> list[ResearchJob]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def list_by_owner(self, owner_id: str, status: JobStatus | None = None) -> list[ResearchJob]:
        return [
            job for job in self.all()
            if job.owner_id == owner_id and (status is None or job.status == status)
        ]

    async def transition(
        self,
        job_id: str,
        allowed_from: Iterable[JobStatus],
        to: JobStatus,
        **changes,
    ) -> ResearchJob | None:
        """Move a job to `to` if its current status is in `allowed_from`.

        Returns the new snapshot, or None (job untouched) when the current
        status does not allow it.
        """
        allowed = frozenset(allowed_from)
        async with self._changed:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status not in allowed:
                return None
            if job.status != to and not job.status.can_transition_to(to):
                return None
            updated = job.with_status(to, **changes)
            self._jobs[job_id] = updated
            if self._repo is not None:
                await self._repo.save(updated)
            self._changed.notify_all()
        if job.status != to:
            logger.info("Job %s: %s -> %s", job_id, job.status.value, to.value)
        return updated

    async def update_progress(self, job_id: str, progress: JobProgress) -> ResearchJob | None:
        async with self._changed:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return job
            updated = job.with_progress(progress)
            self._jobs[job_id] = updated
            self._changed.notify_all()
        return updated

    async def save_cursor(self, job_id: str, cursor: StageCursor) -> None:
        async with self._changed:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            updated = job.with_cursor(cursor)
            self._jobs[job_id] = updated
            if self._repo is not None:
                await self._repo.save(updated)

    async def wait_for(
        self, job_id: str, predicate: Callable[[ResearchJob], bool]
    ) -> ResearchJob:
        """Block until the job's snapshot satisfies `predicate`."""
        async with self._changed:
            if job_id not in self._jobs:
                raise JobNotFound(job_id)
            await self._changed.wait_for(lambda: predicate(self._jobs[job_id]))
            return self._jobs[job_id]

    async def load(self) -> list[ResearchJob]:
        """Pull unfinished jobs from the repo into the registry."""
        if self._repo is None:
            return []
        jobs = await self._repo.list_unfinished()
        async with self._changed:
            for job in jobs:
                self._jobs.setdefault(job.id, job)
        logger.info("Loaded %d unfinished job(s)", len(jobs))
        return jobs
