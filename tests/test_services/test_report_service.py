"""Tests for ReportService."""

from unittest.mock import AsyncMock

import pytest

from researchbench.errors import ReportNotFound, StateConflict, ValidationError
from researchbench.models.job import JobStatus, ResearchJob
from researchbench.models.report import Report, ReportFormat, ReportSection
from researchbench.models.source import SourceRecord
from researchbench.services.report_service import ReportService


def _report(dangling: bool = False) -> Report:
    src = SourceRecord(url="https://a.example.org")
    ids = (src.id, "src-gone") if dangling else (src.id,)
    return Report(
        job_id="j1",
        topic="t",
        executive_summary="s",
        sections=(ReportSection(title="A", content="c", source_ids=ids),),
        sources={src.id: src},
    )


def _completed(report_id: str) -> ResearchJob:
    return ResearchJob(topic="t", status=JobStatus.COMPLETED, report_id=report_id)


class TestReportService:
    @pytest.mark.asyncio
    async def test_export_completed(self):
        service = ReportService()
        report = await service.save(_report())
        export = await service.export(_completed(report.id), "html")
        assert export.report is report
        assert export.format == ReportFormat.HTML

    @pytest.mark.asyncio
    async def test_export_requires_completed_job(self):
        with pytest.raises(StateConflict) as exc:
            await ReportService().export(ResearchJob(topic="t"))
        assert exc.value.action == "export"
        assert exc.value.status == "pending"

    @pytest.mark.asyncio
    async def test_export_missing_report(self):
        with pytest.raises(ReportNotFound):
            await ReportService().export(_completed("r-missing"))

    @pytest.mark.asyncio
    async def test_export_rejects_dangling_references(self):
        service = ReportService()
        report = await service.save(_report(dangling=True))
        with pytest.raises(ValidationError, match="unknown sources"):
            await service.export(_completed(report.id))

    @pytest.mark.asyncio
    async def test_export_unknown_format(self):
        service = ReportService()
        report = await service.save(_report())
        with pytest.raises(ValidationError, match="Unsupported report format"):
            await service.export(_completed(report.id), "rtf")

    @pytest.mark.asyncio
    async def test_repo_fallback_and_discard(self):
        repo = AsyncMock()
        report = _report()
        repo.find_by_id.return_value = report
        service = ReportService(repo)
        assert await service.get_report(report.id) is report
        repo.find_by_id.assert_awaited_once_with(report.id)

        await service.discard(report.id)
        repo.delete.assert_awaited_once_with(report.id)
