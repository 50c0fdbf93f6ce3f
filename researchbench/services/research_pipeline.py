"""Research phase: queries, search, capture, summarization and credibility.

Every stage commits its output to the job's stage cursor before the next
stage starts, so a paused job resumes from the last committed position and
never repeats a search or capture it already finished.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone

from researchbench.errors import PipelineFailure, TransientExternalError
from researchbench.models.job import CursorPhase, JobConfig, StageCursor
from researchbench.models.provider import LLMMessage, ResponseFormat
from researchbench.models.research import (
    Candidate,
    CaptureRecord,
    ResearchOutput,
    SearchResult,
)
from researchbench.models.source import SourceRecord
from researchbench.scoring.credibility import CredibilityEvaluator, host_of, source_type_for
from researchbench.services import prompts
from researchbench.services.external import SKIPPED, ExternalCaller, bounded_map
from researchbench.services.pipeline_context import PipelineContext
from researchbench.services.progress import PHASE_ANALYSIS, PHASE_QUERIES, PHASE_SEARCH

logger = logging.getLogger(__name__)

MIN_QUERIES = 3
MAX_QUERIES = 5

QUERY_TEMPLATES = (
    "{topic}",
    "{topic} overview and key aspects",
    "{topic} challenges and criticism",
    "{topic} recent developments",
    "{topic} research evidence",
)

_TERM_RE = re.compile(r"[a-z0-9]{3,}")
_STOPWORDS = frozenset(
    "the and for are but not you all any can had her was one our out has have with this "
    "that from they will would there their what about which when were been into more "
    "also than them then some such only other its may could".split()
)


def content_terms(text: str) -> set[str]:
    return {t for t in _TERM_RE.findall(text.lower()) if t not in _STOPWORDS}


def information_gain(terms: set[str], seen: set[str]) -> float:
    """Fraction of `terms` not already present in `seen`."""
    if not terms:
        return 0.0
    return len(terms - seen) / len(terms)


def is_excluded(url: str, excluded_domains) -> bool:
    host = host_of(url)
    return any(host == d or host.endswith("." + d) for d in excluded_domains)


def truncate_content(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def pad_queries(topic: str, queries: list[str]) -> list[str]:
    """Dedupe and cap model queries, padding with templates to at least three."""
    distinct: list[str] = []
    seen: set[str] = set()

    def _add(query: str) -> None:
        key = query.strip().lower()
        if key and key not in seen:
            seen.add(key)
            distinct.append(query.strip())

    for query in queries:
        if len(distinct) >= MAX_QUERIES:
            break
        _add(query)
    for template in QUERY_TEMPLATES:
        if len(distinct) >= MIN_QUERIES:
            break
        _add(template.format(topic=topic))
    return distinct


def rank_results(results: list[SearchResult], config: JobConfig) -> tuple[SearchResult, ...]:
    ranked: list[SearchResult] = []
    urls: set[str] = set()
    for result in sorted(results, key=lambda r: r.score, reverse=True):
        if result.url in urls or is_excluded(result.url, config.excluded_domains):
            continue
        urls.add(result.url)
        ranked.append(result)
    return tuple(ranked[: config.results_per_query])


def initial_candidates(cursor: StageCursor) -> tuple[Candidate, ...]:
    """Round-robin over the queries' ranked results so every query is represented."""
    per_query = [(q, cursor.completed_queries.get(q, ())) for q in cursor.queries]
    candidates: list[Candidate] = []
    urls: set[str] = set()
    depth = max((len(results) for _, results in per_query), default=0)
    for rank in range(depth):
        for query, results in per_query:
            if rank < len(results) and results[rank].url not in urls:
                result = results[rank]
                urls.add(result.url)
                candidates.append(Candidate(
                    url=result.url,
                    query=query,
                    title=result.title,
                    snippet=result.snippet,
                ))
    return tuple(candidates)


def research_output_from_cursor(topic: str, cursor: StageCursor) -> ResearchOutput:
    results: list[SearchResult] = []
    urls: set[str] = set()
    for _, query_results in cursor.search_results:
        for result in query_results:
            if result.url not in urls:
                urls.add(result.url)
                results.append(result)
    return ResearchOutput(
        topic=topic,
        queries=cursor.queries,
        search_results=tuple(results),
        sources=cursor.sources,
        captures=cursor.captures,
        iterations=cursor.iteration,
    )


class ResearchPipeline:
    """Collects and evaluates sources for one topic."""

    def __init__(self, evaluator: CredibilityEvaluator | None = None) -> None:
        self._evaluator = evaluator or CredibilityEvaluator()

    async def run(self, ctx: PipelineContext, caller: ExternalCaller) -> ResearchOutput:
        cursor = ctx.cursor
        if cursor.research_complete:
            logger.info("Job %s: research already complete, reusing cursor", ctx.job_id)
            return research_output_from_cursor(ctx.topic, cursor)

        if not cursor.queries:
            await ctx.progress.start_phase(PHASE_QUERIES)
            queries = await self.generate_queries(ctx.topic, ctx, caller)
            await ctx.commit(replace(cursor, phase=CursorPhase.QUERIES, queries=tuple(queries)))
            await ctx.progress.complete_phase(PHASE_QUERIES)
            cursor = ctx.cursor
        ctx.control.checkpoint()

        if cursor.phase in (CursorPhase.NONE, CursorPhase.QUERIES):
            await self.search(ctx, caller)
            cursor = ctx.cursor
            await ctx.commit(replace(
                cursor,
                phase=CursorPhase.SEARCH,
                frontier=initial_candidates(cursor),
                iteration=1,
            ))
            await ctx.progress.complete_phase(PHASE_SEARCH)
        ctx.control.checkpoint()

        await self.analyse(ctx, caller)
        cursor = ctx.cursor
        if len(cursor.sources) < ctx.config.min_sources:
            raise PipelineFailure(
                f"Only {len(cursor.sources)} source(s) collected, "
                f"at least {ctx.config.min_sources} required",
                phase="research",
            )
        await ctx.commit(replace(cursor, phase=CursorPhase.RESEARCH))
        await ctx.progress.complete_phase(PHASE_ANALYSIS)
        logger.info(
            "Job %s: research collected %d source(s) over %d iteration(s)",
            ctx.job_id, len(cursor.sources), cursor.iteration,
        )
        return research_output_from_cursor(ctx.topic, ctx.cursor)

    async def generate_queries(
        self, topic: str, ctx: PipelineContext, caller: ExternalCaller
    ) -> list[str]:
        """Ask the model for 3-5 queries; pad with templates when it falls short."""
        messages = [
            LLMMessage(role="system", content=prompts.QUERY_SYSTEM),
            LLMMessage(role="user", content=prompts.query_prompt(topic, ctx.config.research_goal)),
        ]
        queries: list[str] = []
        try:
            response = await caller.complete(
                ctx.capabilities.llm, messages, ctx.settings.llm_config(ResponseFormat.JSON)
            )
            queries = prompts.parse_queries(response.content)
        except TransientExternalError as e:
            logger.warning("Query generation failed for job %s: %s", ctx.job_id, e)
        result = pad_queries(topic, queries)
        logger.debug("Job %s queries: %s", ctx.job_id, result)
        return result

    async def search(self, ctx: PipelineContext, caller: ExternalCaller) -> None:
        """Run every query not yet searched; failed queries count as empty.

        Queries interrupted by a pause that was lifted before the checkpoint
        are searched again, so the stage only ends with every query recorded.
        """
        cursor = ctx.cursor
        await ctx.progress.start_phase(PHASE_SEARCH)

        async def _search(query: str) -> tuple[SearchResult, ...]:
            results = await caller.search(
                ctx.capabilities.search, query, ctx.config.results_per_query
            )
            return rank_results(list(results), ctx.config)

        while True:
            done = cursor.completed_queries
            pending = [q for q in cursor.queries if q not in done]
            if not pending:
                break
            outcomes = await bounded_map(pending, _search, ctx.config.max_parallel_searches)
            for query, outcome in zip(pending, outcomes):
                if outcome is SKIPPED:
                    continue
                if outcome is None:
                    logger.warning("Search failed for query %r; continuing without it", query)
                    outcome = ()
                cursor = cursor.with_search_results(query, outcome)
            await ctx.commit(cursor)
            await ctx.progress.advance(
                PHASE_SEARCH, len(cursor.search_results), len(cursor.queries)
            )
            ctx.control.checkpoint()

    async def analyse(self, ctx: PipelineContext, caller: ExternalCaller) -> None:
        config = ctx.config
        cursor = ctx.cursor
        seen_terms: set[str] = set()
        for source in cursor.sources:
            seen_terms |= content_terms(source.content)
        max_iterations = config.effective_iterations

        await ctx.progress.start_phase(PHASE_ANALYSIS)
        while True:
            visited = set(cursor.visited)
            pending = [c for c in cursor.frontier if c.url not in visited]
            while pending and len(cursor.sources) < config.max_sources:
                room = config.max_sources - len(cursor.sources)
                window = pending[: min(config.max_parallel_searches, room)]
                outcomes = await bounded_map(
                    window,
                    lambda c: self.analyse_candidate(c, ctx, caller),
                    config.max_parallel_searches,
                )
                cursor = self._absorb(cursor, window, outcomes, seen_terms, config, max_iterations)
                await ctx.commit(cursor)
                visited = set(cursor.visited)
                pending = [c for c in cursor.frontier if c.url not in visited]
                await ctx.progress.advance(
                    PHASE_ANALYSIS,
                    len(cursor.sources),
                    config.max_sources,
                    processed_urls=len(cursor.visited),
                    total_urls=len(cursor.visited) + len(pending) + len(cursor.next_frontier),
                    iteration=cursor.iteration,
                )
                ctx.control.checkpoint()

            if (
                len(cursor.sources) >= config.max_sources
                or cursor.iteration >= max_iterations
                or not cursor.next_frontier
            ):
                break
            logger.debug(
                "Job %s: following %d link(s) into iteration %d",
                ctx.job_id, len(cursor.next_frontier), cursor.iteration + 1,
            )
            cursor = replace(
                cursor,
                iteration=cursor.iteration + 1,
                frontier=cursor.next_frontier,
                next_frontier=(),
            )
            await ctx.commit(cursor)

    def _absorb(
        self,
        cursor: StageCursor,
        window: list[Candidate],
        outcomes: list,
        seen_terms: set[str],
        config: JobConfig,
        max_iterations: int,
    ) -> StageCursor:
        visited = list(cursor.visited)
        sources = list(cursor.sources)
        captures = list(cursor.captures)
        next_frontier = list(cursor.next_frontier)
        queued = {c.url for c in cursor.frontier} | {c.url for c in next_frontier} | set(visited)

        for candidate, outcome in zip(window, outcomes):
            if outcome is SKIPPED:
                continue
            visited.append(candidate.url)
            if outcome is None:
                continue
            source, capture, links = outcome
            terms = content_terms(source.content)
            gain = information_gain(terms, seen_terms)
            seen_terms |= terms
            sources.append(source)
            captures.append(capture)

            if candidate.iteration >= max_iterations:
                continue
            if gain < config.information_gain_threshold:
                logger.debug("Not expanding %s: information gain %.2f", candidate.url, gain)
                continue
            added = 0
            for link in links:
                if added >= config.max_links_per_page:
                    break
                if link in queued or is_excluded(link, config.excluded_domains):
                    continue
                queued.add(link)
                next_frontier.append(Candidate(
                    url=link,
                    query=candidate.query,
                    iteration=candidate.iteration + 1,
                    parent_url=candidate.url,
                ))
                added += 1

        return replace(
            cursor,
            phase=CursorPhase.ANALYSIS,
            visited=tuple(visited),
            sources=tuple(sources),
            captures=tuple(captures),
            next_frontier=tuple(next_frontier),
        )

    async def analyse_candidate(
        self, candidate: Candidate, ctx: PipelineContext, caller: ExternalCaller
    ) -> tuple[SourceRecord, CaptureRecord, tuple[str, ...]]:
        """Capture, summarize and score one URL."""
        capture_api = ctx.capabilities.capture
        captured = await caller.capture(capture_api, candidate.url)
        extracted = await caller.extract_text(capture_api, captured.capture_id)
        metadata = await caller.get_metadata(capture_api, captured.capture_id)
        if not extracted.text.strip():
            raise TransientExternalError(f"No text extracted from {candidate.url}", operation="capture")

        content = truncate_content(extracted.text, ctx.settings.max_content_chars)
        title = extracted.title or metadata.title or candidate.title
        summary, key_points, relevance = await self.summarize(candidate, title, content, ctx, caller)

        evaluation = self._evaluator.evaluate(
            candidate.url,
            content,
            {"author": metadata.author, "publish_date": metadata.publish_date},
        )
        source = SourceRecord(
            url=candidate.url,
            title=title,
            content=content,
            summary=summary,
            key_points=tuple(key_points),
            credibility_score=evaluation.score,
            source_type=source_type_for(candidate.url),
            query=candidate.query,
            iteration=candidate.iteration,
            relevance=relevance,
            captured_at=datetime.now(timezone.utc),
        )
        record = CaptureRecord(url=candidate.url, capture_id=captured.capture_id, metadata=metadata)
        return source, record, metadata.links

    async def summarize(
        self,
        candidate: Candidate,
        title: str,
        content: str,
        ctx: PipelineContext,
        caller: ExternalCaller,
    ) -> tuple[str, list[str], float]:
        messages = [
            LLMMessage(role="system", content=prompts.SUMMARY_SYSTEM),
            LLMMessage(
                role="user",
                content=prompts.summary_prompt(candidate.query, candidate.url, title, content),
            ),
        ]
        response = await caller.complete(
            ctx.capabilities.llm, messages, ctx.settings.llm_config(ResponseFormat.JSON)
        )
        parsed = prompts.parse_summary(response.content)
        if parsed is None or not parsed[0]:
            logger.warning("Unusable summary for %s; using snippet", candidate.url)
            return (candidate.snippet or content[:300]).strip(), [], 0.0
        return parsed
