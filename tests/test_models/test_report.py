"""Tests for Report models."""

import pytest

from researchbench.models.assessment import ImprovementArea, QualityAssessment
from researchbench.models.report import Report, ReportFormat, ReportSection
from researchbench.models.source import SourceRecord


def _source(url: str) -> SourceRecord:
    return SourceRecord(url=url, title="T", credibility_score=70)


class TestReport:
    def test_requires_job_id(self):
        with pytest.raises(ValueError, match="job_id"):
            Report(job_id="", topic="t", executive_summary="")

    def test_dangling_references(self):
        src = _source("https://a.example.org")
        report = Report(
            job_id="j1",
            topic="t",
            executive_summary="s",
            sections=(ReportSection(title="A", content="c", source_ids=(src.id, "src-missing")),),
            sources={src.id: src},
        )
        assert report.dangling_references() == [("A", "src-missing")]
        assert not report.is_consistent

    def test_consistent(self):
        src = _source("https://a.example.org")
        report = Report(
            job_id="j1",
            topic="t",
            executive_summary="s",
            sections=(ReportSection(title="A", content="c", source_ids=(src.id,)),),
            sources={src.id: src},
        )
        assert report.is_consistent

    def test_doc_roundtrip(self):
        src = _source("https://a.example.org")
        quality = QualityAssessment(
            diversity=40, quality=80, completeness=30, depth=50, overall=50, rating="average",
            improvement_areas=(ImprovementArea(area="Depth", recommendation="Go deeper."),),
        )
        report = Report(
            job_id="j1",
            topic="t",
            executive_summary="s",
            key_findings=("f1",),
            sections=(ReportSection(title="A", content="c", source_ids=(src.id,)),),
            sources={src.id: src},
            format=ReportFormat.HTML,
            quality=quality,
        )
        restored = Report.from_doc(report.to_doc())
        assert restored.id == report.id
        assert restored.format == ReportFormat.HTML
        assert restored.sources[src.id].url == src.url
        assert restored.quality.recommendations == ["Go deeper."]


class TestQualityAssessment:
    def test_sub_score_bounds(self):
        with pytest.raises(ValueError, match="between 0 and 100"):
            QualityAssessment(
                diversity=120, quality=0, completeness=0, depth=0, overall=30, rating="poor"
            )

    def test_exactly_four_sub_scores(self):
        qa = QualityAssessment(
            diversity=10, quality=20, completeness=30, depth=40, overall=25, rating="very poor"
        )
        assert list(qa.sub_scores) == ["diversity", "quality", "completeness", "depth"]
