"""Tests for the synthesis phase."""

import logging
from dataclasses import replace

import pytest

from researchbench.errors import JobSuspended, TransientExternalError
from researchbench.models.report import ReportSection
from researchbench.models.research import ResearchOutput
from researchbench.models.source import SourceRecord
from researchbench.services import prompts
from researchbench.services.control import JobControl
from researchbench.services.synthesis_pipeline import (
    ADDITIONAL_SECTION_TITLE,
    SynthesisPipeline,
    executive_summary,
    first_sentence,
    key_findings_from,
    plan_sections,
)


def _source(n: int, query: str, score: int = 70, points=()) -> SourceRecord:
    return SourceRecord(
        url=f"https://site{n}.example.org/a",
        title=f"Source {n}",
        summary=f"Summary {n}.",
        key_points=tuple(points),
        credibility_score=score,
        source_type="organization",
        query=query,
    )


class ResumingControl(JobControl):
    """Honors a pause at most once, lifting it as soon as it is raised."""

    def __init__(self, job_id):
        super().__init__(job_id)
        self.interruptions = 0

    def checkpoint(self):
        try:
            super().checkpoint()
        except JobSuspended:
            self.interruptions += 1
            self.clear_pause()
            raise

@pytest.fixture
def pipeline():
    return SynthesisPipeline()


@pytest.fixture
def research():
    sources = (
        _source(1, "storage costs", 90, ["Costs fell sharply"]),
        _source(2, "storage costs", 40, ["costs fell  sharply", "Prices vary by region"]),
        _source(3, "storage outlook", 60, ["Capacity is growing"]),
        _source(4, "unrelated query", 50),
    )
    return ResearchOutput(
        topic="grid storage",
        queries=("storage costs", "storage outlook", "storage basics"),
        search_results=(),
        sources=sources,
    )


class TestHelpers:
    def test_key_findings_deduped_by_credibility(self, research):
        findings = key_findings_from(research.sources)
        assert findings == ["Costs fell sharply", "Capacity is growing", "Prices vary by region"]

    def test_plan_sections(self, research):
        plans = plan_sections(research.queries, research.sources)
        assert [p.title for p in plans] == [
            "Storage costs", "Storage outlook", ADDITIONAL_SECTION_TITLE,
        ]
        assert len(plans[0].sources) == 2

    def test_first_sentence(self):
        assert first_sentence("Alpha beta. Gamma delta.") == "Alpha beta."
        long = "word " * 60
        assert first_sentence(long) == long.strip()[:147] + "..."

    def test_executive_summary_without_assessment(self):
        sections = [ReportSection(title="A", content="First. Second."), ReportSection(title="B", content="")]
        assert executive_summary("t", sections, None) == "First."


class TestSynthesisRun:
    @pytest.mark.asyncio
    async def test_builds_consistent_report(self, pipeline, make_ctx, research):
        ctx = make_ctx(topic="grid storage")
        report = await pipeline.run(ctx, ctx.new_caller(), research)
        assert report.job_id == ctx.job_id
        assert report.is_consistent
        assert len(report.sections) == 3
        assert set(report.sources) == {s.id for s in research.sources}
        assert len(report.quality.sub_scores) == 4
        assert report.executive_summary.endswith(
            f"Research quality: {report.quality.rating} ({report.quality.overall}/100)."
        )
        assert report.key_findings[0] == "Costs fell sharply"

    @pytest.mark.asyncio
    async def test_section_failure_falls_back_to_digest(
        self, pipeline, make_ctx, research, fake_llm
    ):
        fake_llm.section_error = TransientExternalError("model down", operation="complete")
        ctx = make_ctx()
        report = await pipeline.run(ctx, ctx.new_caller(), research)
        costs = report.sections[0]
        assert "Summary 1. [1]" in costs.content
        assert "Summary 2. [2]" in costs.content

    def test_format_report_drops_dangling_references(self, pipeline, research, caplog):
        sources = list(research.sources)
        sections = [ReportSection(title="A", content="text", source_ids=(sources[0].id, "src-gone"))]
        with caplog.at_level(logging.WARNING):
            report = pipeline.format_report("t", sections, sources, None, job_id="j1")
        assert report.sections[0].source_ids == (sources[0].id,)
        assert report.is_consistent
        assert "src-gone" in caplog.text

    @pytest.mark.asyncio
    async def test_sections_interrupted_by_lifted_pause_are_redrafted(
        self, pipeline, make_ctx, research, fake_llm
    ):
        ctx = make_ctx(topic="grid storage")
        ctx.control = ResumingControl(ctx.job_id)
        ctx.settings = replace(ctx.settings, synthesis_batch_size=1)
        complete = fake_llm.complete

        async def pausing_complete(messages, config=None):
            if "section" not in fake_llm.calls and messages[0].content == prompts.SECTION_SYSTEM:
                ctx.control.request_pause()
            return await complete(messages, config)

        fake_llm.complete = pausing_complete
        report = await pipeline.run(ctx, ctx.new_caller(), research)

        assert ctx.control.interruptions == 1
        assert fake_llm.calls.count("section") == len(report.sections) + 1
        assert all(s.content.startswith("This section cites") for s in report.sections)
