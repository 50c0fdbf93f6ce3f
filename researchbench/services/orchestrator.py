"""Per-job orchestration: research, enrichment, synthesis."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from researchbench.errors import (
    JobCancelled,
    JobSuspended,
    PipelineFailure,
    TransientExternalError,
)
from researchbench.models.report import Report
from researchbench.models.research import (
    CaptureRecord,
    EnrichedResult,
    PipelineStats,
    ResearchOutput,
    SearchResult,
)
from researchbench.models.source import SourceRecord
from researchbench.services.pipeline_context import PipelineContext
from researchbench.services.progress import PHASE_ENRICHMENT
from researchbench.services.research_pipeline import ResearchPipeline
from researchbench.services.synthesis_pipeline import SynthesisPipeline

logger = logging.getLogger(__name__)


class OrchestratorPhase(str, Enum):
    RESEARCH = "research"
    ENRICHMENT = "enrichment"
    SYNTHESIS = "synthesis"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrchestratorStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class OrchestratorResult:
    status: OrchestratorStatus
    phase: OrchestratorPhase
    report: Report | None = None
    research: ResearchOutput | None = None
    enriched: tuple[EnrichedResult, ...] = ()
    research_stats: PipelineStats = field(default_factory=PipelineStats)
    synthesis_stats: PipelineStats = field(default_factory=PipelineStats)
    error: str = ""

    @property
    def total_stats(self) -> PipelineStats:
        return self.research_stats + self.synthesis_stats


def enrich_results(
    results: Sequence[SearchResult], captures: Sequence[CaptureRecord]
) -> tuple[EnrichedResult, ...]:
    """Pair each search result with the capture requested for the same URL.

    Matching is by exact URL only; unmatched results keep just their snippet.
    """
    by_url = {c.metadata.url: c for c in captures}
    enriched = []
    for result in results:
        capture = by_url.get(result.url)
        if capture is None:
            enriched.append(EnrichedResult(result=result))
        else:
            enriched.append(EnrichedResult(
                result=result, capture_id=capture.capture_id, metadata=capture.metadata
            ))
    return tuple(enriched)


def enrich_sources(
    sources: Sequence[SourceRecord], captures: Sequence[CaptureRecord]
) -> tuple[SourceRecord, ...]:
    by_url = {c.metadata.url: c for c in captures}
    return tuple(
        source.with_capture_metadata(by_url[source.url].metadata)
        if source.url in by_url else source
        for source in sources
    )


class ResearchOrchestrator:
    """Drives one job from topic to report.

    Research failures short-circuit to FAILED; a synthesis failure still
    returns the research output as PARTIAL. Pause and cancel signals are
    not handled here and propagate to the caller.
    """

    def __init__(
        self,
        research_pipeline: ResearchPipeline | None = None,
        synthesis_pipeline: SynthesisPipeline | None = None,
    ) -> None:
        self._research = research_pipeline or ResearchPipeline()
        self._synthesis = synthesis_pipeline or SynthesisPipeline()

    async def run(self, ctx: PipelineContext) -> OrchestratorResult:
        research_caller = ctx.new_caller()
        try:
            research = await self._research.run(ctx, research_caller)
        except (PipelineFailure, TransientExternalError) as e:
            logger.warning("Job %s: research failed: %s", ctx.job_id, e)
            return OrchestratorResult(
                status=OrchestratorStatus.FAILED,
                phase=OrchestratorPhase.FAILED,
                research_stats=research_caller.stats(),
                error=str(e),
            )
        research_stats = research_caller.stats()

        await ctx.progress.start_phase(PHASE_ENRICHMENT)
        enriched = enrich_results(research.search_results, research.captures)
        research = research.with_sources(enrich_sources(research.sources, research.captures))
        matched = sum(1 for e in enriched if e.is_enriched)
        logger.debug(
            "Job %s: %d of %d search result(s) matched a capture",
            ctx.job_id, matched, len(enriched),
        )
        await ctx.progress.complete_phase(PHASE_ENRICHMENT)
        ctx.control.checkpoint()

        synthesis_caller = ctx.new_caller()
        try:
            report = await self._synthesis.run(ctx, synthesis_caller, research)
        except (JobSuspended, JobCancelled):
            raise
        except Exception as e:
            logger.exception("Job %s: synthesis failed", ctx.job_id)
            return OrchestratorResult(
                status=OrchestratorStatus.PARTIAL,
                phase=OrchestratorPhase.FAILED,
                research=research,
                enriched=enriched,
                research_stats=research_stats,
                synthesis_stats=synthesis_caller.stats(),
                error=f"Synthesis failed: {e}",
            )

        result = OrchestratorResult(
            status=OrchestratorStatus.SUCCESS,
            phase=OrchestratorPhase.DONE,
            report=report,
            research=research,
            enriched=enriched,
            research_stats=research_stats,
            synthesis_stats=synthesis_caller.stats(),
        )
        total = result.total_stats
        logger.info(
            "Job %s: done in %.1fs, %d LLM call(s), cost $%.4f",
            ctx.job_id, total.duration_seconds, total.llm_calls, total.cost,
        )
        return result
