"""Report persistence, lookup and hand-off to the rendering layer."""

from __future__ import annotations

import logging

from researchbench.errors import ReportNotFound, StateConflict, ValidationError
from researchbench.infra.db.reports import ReportRepo
from researchbench.models.job import JobStatus, ResearchJob
from researchbench.models.report import Report, ReportExport, ReportFormat

logger = logging.getLogger(__name__)


class ReportService:
    """Stores final reports; falls back to memory when no repo is configured."""

    def __init__(self, repo: ReportRepo | None = None) -> None:
        self._repo = repo
        self._reports: dict[str, Report] = {}

    async def save(self, report: Report) -> Report:
        self._reports[report.id] = report
        if self._repo is not None:
            await self._repo.insert(report)
        return report

    async def discard(self, report_id: str) -> None:
        """Drop a report that never got attached to its job."""
        self._reports.pop(report_id, None)
        if self._repo is not None:
            await self._repo.delete(report_id)

    async def get_report(self, report_id: str) -> Report | None:
        report = self._reports.get(report_id)
        if report is None and self._repo is not None:
            report = await self._repo.find_by_id(report_id)
            if report is not None:
                self._reports[report.id] = report
        return report

    async def export(self, job: ResearchJob, format: ReportFormat | str | None = None) -> ReportExport:
        """Return the job's report for rendering, checked for dangling references."""
        if job.status != JobStatus.COMPLETED:
            raise StateConflict(job.id, "export", job.status.value)
        report = await self.get_report(job.report_id)
        if report is None:
            raise ReportNotFound(job.report_id)
        dangling = report.dangling_references()
        if dangling:
            logger.error("Report %s has dangling references: %s", report.id, dangling)
            raise ValidationError(f"Report {report.id} references unknown sources")
        try:
            target = ReportFormat(format) if format else report.format
        except ValueError as e:
            raise ValidationError(f"Unsupported report format: {format}") from e
        return ReportExport(report=report, format=target)
