"""Synthesis phase: quality assessment and cited report assembly."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from researchbench.models.assessment import QualityAssessment
from researchbench.models.provider import LLMMessage
from researchbench.models.report import Report, ReportFormat, ReportSection
from researchbench.models.research import ResearchOutput
from researchbench.models.source import SourceRecord
from researchbench.scoring.quality import QualityAssessor
from researchbench.services import prompts
from researchbench.services.external import SKIPPED, ExternalCaller, gather_in_batches
from researchbench.services.pipeline_context import PipelineContext
from researchbench.services.progress import PHASE_SYNTHESIS

logger = logging.getLogger(__name__)

SUMMARY_SENTENCE_LIMIT = 150
ADDITIONAL_SECTION_TITLE = "Additional Sources"


@dataclass(frozen=True)
class SectionPlan:
    title: str
    sources: tuple[SourceRecord, ...]


def key_findings_from(sources: Sequence[SourceRecord]) -> list[str]:
    """Deduplicated key points, highest-credibility sources first."""
    ordered = sorted(
        sources,
        key=lambda s: s.credibility_score if s.credibility_score is not None else -1,
        reverse=True,
    )
    findings: list[str] = []
    seen: set[str] = set()
    for source in ordered:
        for point in source.key_points:
            key = " ".join(point.lower().split())
            if key and key not in seen:
                seen.add(key)
                findings.append(point.strip())
    return findings


def first_sentence(content: str) -> str:
    sentence = content.strip().split(". ")[0].rstrip(".") + "."
    if len(sentence) <= SUMMARY_SENTENCE_LIMIT:
        return sentence
    return content.strip()[:147] + "..."


def executive_summary(
    topic: str, sections: Sequence[ReportSection], assessment: QualityAssessment | None
) -> str:
    lines = [first_sentence(s.content) for s in sections if s.content.strip()]
    if assessment is not None:
        lines.append(f"Research quality: {assessment.rating} ({assessment.overall}/100).")
    return "\n".join(lines)


def plan_sections(queries: Sequence[str], sources: Sequence[SourceRecord]) -> list[SectionPlan]:
    """One section per originating query, in query order; strays go last."""
    grouped: dict[str, list[SourceRecord]] = {q: [] for q in queries}
    strays: list[SourceRecord] = []
    for source in sources:
        if source.query in grouped:
            grouped[source.query].append(source)
        else:
            strays.append(source)
    plans = [
        SectionPlan(title=query[:1].upper() + query[1:], sources=tuple(group))
        for query, group in grouped.items()
        if group
    ]
    if strays:
        plans.append(SectionPlan(title=ADDITIONAL_SECTION_TITLE, sources=tuple(strays)))
    return plans


def digest(plan: SectionPlan, numbers: dict[str, int]) -> str:
    """Deterministic fallback prose built from the sources' summaries."""
    parts = [
        f"{(s.summary or s.title or s.url).strip()} [{numbers[s.id]}]"
        for s in plan.sources
    ]
    return "\n\n".join(parts)


class SynthesisPipeline:
    """Turns a research output into a quality-assessed, cited report."""

    def __init__(self, assessor: QualityAssessor | None = None) -> None:
        self._assessor = assessor or QualityAssessor()

    async def run(
        self, ctx: PipelineContext, caller: ExternalCaller, research: ResearchOutput
    ) -> Report:
        await ctx.progress.start_phase(PHASE_SYNTHESIS)
        sources = list(research.sources)
        findings = key_findings_from(sources)
        assessment = self.assess_quality(
            ctx.topic, sources, findings, ctx.config.research_goal or None
        )
        ctx.control.checkpoint()

        sections = await self.draft_sections(ctx, caller, research.queries, sources)
        ctx.control.checkpoint()

        report = self.format_report(
            ctx.topic,
            sections,
            sources,
            assessment,
            job_id=ctx.job_id,
            key_findings=findings,
            format=ReportFormat(ctx.config.report_format),
        )
        await ctx.progress.complete_phase(PHASE_SYNTHESIS)
        return report

    def assess_quality(
        self,
        topic: str,
        sources: Sequence[SourceRecord],
        key_findings: Sequence[str],
        research_goal: str | None = None,
    ) -> QualityAssessment:
        return self._assessor.assess(topic, sources, key_findings, research_goal)

    async def draft_sections(
        self,
        ctx: PipelineContext,
        caller: ExternalCaller,
        queries: Sequence[str],
        sources: Sequence[SourceRecord],
    ) -> list[ReportSection]:
        plans = plan_sections(queries, sources)
        numbers = {s.id: i for i, s in enumerate(sources, start=1)}

        async def _draft(plan: SectionPlan) -> str:
            listing = [(numbers[s.id], s.title, s.url, s.summary) for s in plan.sources]
            messages = [
                LLMMessage(role="system", content=prompts.SECTION_SYSTEM),
                LLMMessage(
                    role="user",
                    content=prompts.section_prompt(ctx.topic, plan.title, listing),
                ),
            ]
            response = await caller.complete(
                ctx.capabilities.llm, messages, ctx.settings.llm_config()
            )
            return response.content.strip()

        # Plans interrupted by a lifted pause are drafted again, not digested.
        drafts: dict[int, str | None] = {}
        todo = list(range(len(plans)))
        while todo:
            outcomes = await gather_in_batches(
                [plans[i] for i in todo], _draft, ctx.settings.synthesis_batch_size
            )
            ctx.control.checkpoint()
            for i, outcome in zip(todo, outcomes):
                if outcome is not SKIPPED:
                    drafts[i] = outcome
            todo = [i for i in todo if i not in drafts]

        sections = []
        for index, plan in enumerate(plans, start=1):
            draft = drafts[index - 1]
            if not draft:
                logger.warning("Section %r fell back to a source digest", plan.title)
                draft = digest(plan, numbers)
            sections.append(ReportSection(
                title=plan.title,
                content=draft,
                source_ids=tuple(s.id for s in plan.sources),
            ))
            await ctx.progress.advance(PHASE_SYNTHESIS, index, len(plans))
        return sections

    def format_report(
        self,
        topic: str,
        sections: Sequence[ReportSection],
        sources: Sequence[SourceRecord],
        assessment: QualityAssessment | None,
        *,
        job_id: str,
        key_findings: Sequence[str] | None = None,
        format: ReportFormat = ReportFormat.MARKDOWN,
    ) -> Report:
        """Assemble the report, dropping any section reference to an unknown source."""
        source_map = {s.id: s for s in sources}
        checked = []
        for section in sections:
            kept = tuple(sid for sid in dict.fromkeys(section.source_ids) if sid in source_map)
            dropped = [sid for sid in section.source_ids if sid not in source_map]
            if dropped:
                logger.warning(
                    "Dropping dangling source reference(s) %s from section %r",
                    dropped, section.title,
                )
            checked.append(
                ReportSection(title=section.title, content=section.content, source_ids=kept)
            )

        findings = key_findings if key_findings is not None else key_findings_from(sources)
        deduped = list(dict.fromkeys(f.strip() for f in findings if f.strip()))
        return Report(
            job_id=job_id,
            topic=topic,
            executive_summary=executive_summary(topic, checked, assessment),
            key_findings=tuple(deduped),
            sections=tuple(checked),
            sources=source_map,
            format=format,
            quality=assessment,
        )
