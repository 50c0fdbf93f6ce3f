"""Job repository - MongoDB persistence for research jobs."""

from __future__ import annotations

import logging

from researchbench.models.job import JobStatus, ResearchJob

logger = logging.getLogger(__name__)


class JobRepo:
    """CRUD operations for research jobs in MongoDB.

    Jobs carry their own uuid as `_id`, so a snapshot can be written with a
    single upsert after every state change.
    """

    COLLECTION = "jobs"

    def __init__(self, db) -> None:
        self._col = db[self.COLLECTION]

    async def save(self, job: ResearchJob) -> ResearchJob:
        """Write the full job snapshot, inserting it if missing."""
        await self._col.replace_one({"_id": job.id}, job.to_doc(), upsert=True)
        return job

    async def find_by_id(self, job_id: str) -> ResearchJob | None:
        doc = await self._col.find_one({"_id": job_id})
        return ResearchJob.from_doc(doc) if doc else None

    async def list_jobs(self, status: JobStatus | None = None) -> list[ResearchJob]:
        """List jobs, newest first, optionally filtered by status."""
        query: dict = {}
        if status:
            query["status"] = status.value
        cursor = self._col.find(query).sort("created_at", -1)
        return [ResearchJob.from_doc(doc) async for doc in cursor]

    async def list_by_owner(
        self, owner_id: str, status: JobStatus | None = None
    ) -> list[ResearchJob]:
        query: dict = {"owner_id": owner_id}
        if status:
            query["status"] = status.value
        cursor = self._col.find(query).sort("created_at", -1)
        return [ResearchJob.from_doc(doc) async for doc in cursor]

    async def list_unfinished(self) -> list[ResearchJob]:
        """Jobs that were pending, running or paused when the process stopped."""
        cursor = self._col.find({
            "status": {
                "$in": [
                    JobStatus.PENDING.value,
                    JobStatus.RUNNING.value,
                    JobStatus.PAUSED.value,
                ]
            }
        }).sort("created_at", 1)
        return [ResearchJob.from_doc(doc) async for doc in cursor]

    async def delete(self, job_id: str) -> bool:
        result = await self._col.delete_one({"_id": job_id})
        return result.deleted_count > 0
