"""Report repository - MongoDB persistence for final reports."""

from __future__ import annotations

import logging

from researchbench.models.report import Report

logger = logging.getLogger(__name__)


class ReportRepo:
    """CRUD operations for reports in MongoDB."""

    COLLECTION = "reports"

    def __init__(self, db) -> None:
        self._col = db[self.COLLECTION]

    async def insert(self, report: Report) -> Report:
        await self._col.insert_one(report.to_doc())
        logger.debug("Stored report %s for job %s", report.id, report.job_id)
        return report

    async def find_by_id(self, report_id: str) -> Report | None:
        doc = await self._col.find_one({"_id": report_id})
        return Report.from_doc(doc) if doc else None

    async def find_by_job(self, job_id: str) -> Report | None:
        doc = await self._col.find_one({"job_id": job_id})
        return Report.from_doc(doc) if doc else None

    async def delete(self, report_id: str) -> bool:
        result = await self._col.delete_one({"_id": report_id})
        return result.deleted_count > 0
