"""Tests for the research phase stages."""

import pytest

from researchbench.errors import JobSuspended, PipelineFailure
from researchbench.models.job import CursorPhase, JobConfig, StageCursor
from researchbench.models.research import SearchResult
from researchbench.services.research_pipeline import (
    ResearchPipeline,
    information_gain,
    initial_candidates,
    is_excluded,
    pad_queries,
    rank_results,
    truncate_content,
)

QUERIES = ["storage basics", "storage costs", "storage outlook"]


@pytest.fixture
def pipeline():
    return ResearchPipeline()


class TestHelpers:
    def test_pad_queries_fills_to_three(self):
        assert pad_queries("grid storage", []) == [
            "grid storage",
            "grid storage overview and key aspects",
            "grid storage challenges and criticism",
        ]

    def test_pad_queries_dedupes_and_caps(self):
        queries = ["A", "a ", "b", "c", "d", "e", "f"]
        assert pad_queries("t", queries) == ["A", "b", "c", "d", "e"]

    def test_pad_queries_keeps_four(self):
        assert pad_queries("t", ["a", "b", "c", "d"]) == ["a", "b", "c", "d"]

    def test_is_excluded_matches_subdomains(self):
        assert is_excluded("https://www.pinterest.com/pin/1", ("pinterest.com",))
        assert is_excluded("https://pinterest.com", ("pinterest.com",))
        assert not is_excluded("https://notpinterest.com", ("pinterest.com",))

    def test_rank_results(self):
        results = [
            SearchResult(url="https://a.example.org", score=0.2),
            SearchResult(url="https://b.example.org", score=0.9),
            SearchResult(url="https://www.pinterest.com/x", score=1.0),
            SearchResult(url="https://b.example.org", score=0.5),
            SearchResult(url="https://c.example.org", score=0.4),
        ]
        ranked = rank_results(results, JobConfig(results_per_query=2))
        assert [r.url for r in ranked] == ["https://b.example.org", "https://c.example.org"]

    def test_initial_candidates_round_robin(self):
        cursor = StageCursor(
            queries=("q1", "q2"),
            search_results=(
                ("q1", (SearchResult(url="https://a1"), SearchResult(url="https://a2"))),
                ("q2", (SearchResult(url="https://b1"), SearchResult(url="https://a1"))),
            ),
        )
        candidates = initial_candidates(cursor)
        assert [c.url for c in candidates] == ["https://a1", "https://b1", "https://a2"]
        assert candidates[1].query == "q2"

    def test_information_gain(self):
        assert information_gain({"a", "b"}, set()) == 1.0
        assert information_gain({"a", "b"}, {"a"}) == 0.5
        assert information_gain(set(), {"a"}) == 0.0

    def test_truncate_content(self):
        assert truncate_content("abcdef", 3) == "abc..."
        assert truncate_content("abc", 3) == "abc"


class TestGenerateQueries:
    @pytest.mark.asyncio
    async def test_uses_model_queries(self, pipeline, make_ctx):
        ctx = make_ctx()
        queries = await pipeline.generate_queries(ctx.topic, ctx, ctx.new_caller())
        assert queries == QUERIES

    @pytest.mark.asyncio
    async def test_unparseable_response_is_padded(self, pipeline, make_ctx, fake_llm):
        fake_llm.query_response = "I cannot help with that."
        ctx = make_ctx(topic="grid storage")
        queries = await pipeline.generate_queries(ctx.topic, ctx, ctx.new_caller())
        assert len(queries) == 3
        assert queries[0] == "grid storage"


class TestResearchRun:
    @pytest.mark.asyncio
    async def test_collects_up_to_max_sources(self, pipeline, make_ctx, fake_search):
        ctx = make_ctx(follow_links=False, max_sources=5)
        research = await pipeline.run(ctx, ctx.new_caller())
        assert len(research.sources) == 5
        assert sorted(fake_search.calls) == sorted(QUERIES)
        assert {s.query for s in research.sources[:3]} == set(QUERIES)
        assert all(0 <= s.credibility_score <= 100 for s in research.sources)
        assert all(s.source_type == "organization" for s in research.sources)
        assert ctx.cursor.phase == CursorPhase.RESEARCH
        assert len(research.captures) == 5

    @pytest.mark.asyncio
    async def test_resume_skips_completed_searches(self, pipeline, make_ctx, fake_search):
        ctx = make_ctx(follow_links=False, max_sources=4)
        done = (SearchResult(url="https://kept.example.org/a", score=1.0),)
        ctx.cursor = StageCursor(
            phase=CursorPhase.QUERIES,
            queries=tuple(QUERIES),
            search_results=((QUERIES[0], done),),
        )
        research = await pipeline.run(ctx, ctx.new_caller())
        assert sorted(fake_search.calls) == sorted(QUERIES[1:])
        assert "https://kept.example.org/a" in {s.url for s in research.sources}

    @pytest.mark.asyncio
    async def test_completed_research_is_reused(self, pipeline, make_ctx, fake_search):
        ctx = make_ctx(follow_links=False, max_sources=3)
        first = await pipeline.run(ctx, ctx.new_caller())
        fake_search.calls.clear()
        second = await pipeline.run(ctx, ctx.new_caller())
        assert fake_search.calls == []
        assert [s.id for s in second.sources] == [s.id for s in first.sources]

    @pytest.mark.asyncio
    async def test_follows_links(self, pipeline, make_ctx, fake_search, fake_capture):
        fake_search.per_query = 1
        first_url = "https://storage-basics-0.example.org/article"
        fake_capture.links[first_url] = (
            "https://linked-1.example.net/x",
            "https://linked-2.example.net/y",
            "https://linked-3.example.net/z",
        )
        ctx = make_ctx(
            follow_links=True,
            max_depth=2,
            max_links_per_page=2,
            information_gain_threshold=0.0,
            max_sources=10,
        )
        research = await pipeline.run(ctx, ctx.new_caller())
        urls = {s.url for s in research.sources}
        assert len(research.sources) == 5
        assert "https://linked-1.example.net/x" in urls
        assert "https://linked-3.example.net/z" not in urls
        assert research.iterations == 2
        linked = [s for s in research.sources if s.iteration == 2]
        assert len(linked) == 2

    @pytest.mark.asyncio
    async def test_failed_capture_is_dropped(self, pipeline, make_ctx, fake_capture):
        fake_capture.fail.add("https://storage-costs-0.example.org/article")
        ctx = make_ctx(follow_links=False, max_sources=3)
        research = await pipeline.run(ctx, ctx.new_caller())
        urls = {s.url for s in research.sources}
        assert "https://storage-costs-0.example.org/article" not in urls
        assert len(research.sources) == 3
        assert "https://storage-costs-0.example.org/article" in ctx.cursor.visited

    @pytest.mark.asyncio
    async def test_too_few_sources_fails(self, pipeline, make_ctx, fake_search):
        fake_search.fail.add("*")
        ctx = make_ctx(follow_links=False)
        with pytest.raises(PipelineFailure, match="at least 3"):
            await pipeline.run(ctx, ctx.new_caller())

    @pytest.mark.asyncio
    async def test_pause_raises_at_checkpoint(self, pipeline, make_ctx, fake_llm):
        ctx = make_ctx()
        ctx.control.request_pause()
        with pytest.raises(JobSuspended):
            await pipeline.run(ctx, ctx.new_caller())
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_queries_interrupted_by_lifted_pause_are_searched(
        self, pipeline, make_ctx, fake_search
    ):
        ctx = make_ctx(follow_links=False, max_parallel_searches=1)
        ctx.cursor = StageCursor(phase=CursorPhase.QUERIES, queries=tuple(QUERIES))
        search = fake_search.search

        async def pausing_search(query, max_results=10):
            if not fake_search.calls:
                ctx.control.request_pause()
            return await search(query, max_results)

        async def resume_on_save(cursor):
            if cursor.search_results:
                ctx.control.clear_pause()

        fake_search.search = pausing_search
        ctx.save_cursor = resume_on_save
        await pipeline.search(ctx, ctx.new_caller())

        assert sorted(fake_search.calls) == sorted(QUERIES)
        assert set(ctx.cursor.completed_queries) == set(QUERIES)
        assert all(results for _, results in ctx.cursor.search_results)
