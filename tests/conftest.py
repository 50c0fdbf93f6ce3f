"""Shared fakes for the external capabilities a research job consumes."""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime, timezone

import pytest

from researchbench.config import ResearchDefaults
from researchbench.errors import TransientExternalError
from researchbench.models.job import JobConfig
from researchbench.models.provider import LLMResponse
from researchbench.models.research import (
    CaptureMetadata,
    CaptureResult,
    ExtractedText,
    SearchResult,
    VisualAnalysis,
)
from researchbench.services import prompts
from researchbench.services.control import JobControl
from researchbench.services.external import ExternalPolicy
from researchbench.services.job_queue_service import JobQueueService
from researchbench.services.job_store import JobStore
from researchbench.services.orchestrator import ResearchOrchestrator
from researchbench.services.pipeline_context import (
    Capabilities,
    PipelineContext,
    PipelineSettings,
)
from researchbench.services.progress import ProgressTracker
from researchbench.services.report_service import ReportService

FAST_SETTINGS = PipelineSettings(
    policy=ExternalPolicy(timeout_seconds=5.0, max_retries=1, backoff_seconds=0.0),
)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class FakeLLM:
    """Answers each prompt type with canned, URL-specific JSON or prose."""

    def __init__(self, queries: list[str] | None = None) -> None:
        self.queries = queries if queries is not None else [
            "storage basics", "storage costs", "storage outlook",
        ]
        self.query_response: str | None = None
        self.section_error: Exception | None = None
        self.calls: list[str] = []

    async def complete(self, messages, config=None) -> LLMResponse:
        system = messages[0].content
        user = messages[-1].content
        if system == prompts.QUERY_SYSTEM:
            self.calls.append("queries")
            content = self.query_response
            if content is None:
                content = json.dumps({"queries": self.queries})
        elif system == prompts.SUMMARY_SYSTEM:
            self.calls.append("summary")
            url = re.search(r"^URL: (\S+)", user, re.M).group(1)
            content = json.dumps({
                "summary": f"Summary of {url}.",
                "keyPoints": [f"Finding one from {url}", f"Finding two from {url}"],
                "relevance": 7,
            })
        else:
            self.calls.append("section")
            if self.section_error is not None:
                raise self.section_error
            content = "This section cites its first source [1]. Further detail follows."
        return LLMResponse(
            content=content,
            model="fake-model",
            usage={"input_tokens": 100, "output_tokens": 20},
        )


class FakeSearch:
    """Returns `per_query` results on distinct hosts for every query."""

    def __init__(self, per_query: int = 4) -> None:
        self.per_query = per_query
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.gate: asyncio.Event | None = None

    async def search(self, query: str, max_results: int = 10) -> list[SearchResult]:
        self.calls.append(query)
        if self.gate is not None:
            await self.gate.wait()
        if query in self.fail or "*" in self.fail:
            raise TransientExternalError(f"search down for {query}", operation="search")
        count = min(self.per_query, max_results)
        return [
            SearchResult(
                url=f"https://{_slug(query)}-{i}.example.org/article",
                title=f"{query} result {i}",
                snippet=f"Snippet {i} for {query}",
                engine="fake",
                score=round(1.0 - i / count, 4),
            )
            for i in range(count)
        ]


class FakeCapture:
    """In-memory capture; `links` maps a URL to the links found on its page."""

    def __init__(self) -> None:
        self.links: dict[str, tuple[str, ...]] = {}
        self.fail: set[str] = set()
        self.calls: list[str] = []
        self._pages: dict[str, tuple[CaptureMetadata, str]] = {}

    async def capture(self, url: str) -> CaptureResult:
        self.calls.append(url)
        if url in self.fail:
            raise TransientExternalError(f"capture failed for {url}", operation="capture")
        metadata = CaptureMetadata(
            url=url,
            final_url=url,
            title=f"Page at {url}",
            author="Jane Doe",
            publish_date=datetime.now(timezone.utc).date().isoformat(),
            status_code=200,
            links=self.links.get(url, ()),
            link_count=len(self.links.get(url, ())),
        )
        words = " ".join(_slug(url).split("-"))
        text = f"Detailed article about {words}. It lists each source and citation used."
        capture_id = f"cap-{len(self._pages)}"
        self._pages[capture_id] = (metadata, text)
        return CaptureResult(capture_id=capture_id, metadata=metadata)

    async def extract_text(self, capture_id: str) -> ExtractedText:
        metadata, text = self._pages[capture_id]
        return ExtractedText(capture_id=capture_id, text=text, title=metadata.title)

    async def get_metadata(self, capture_id: str) -> CaptureMetadata:
        return self._pages[capture_id][0]

    async def analyze_visual_elements(self, capture_id: str) -> VisualAnalysis:
        metadata = self._pages[capture_id][0]
        return VisualAnalysis(capture_id=capture_id, page_title=metadata.title)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_search():
    return FakeSearch()


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def capabilities(fake_llm, fake_search, fake_capture):
    return Capabilities(llm=fake_llm, search=fake_search, capture=fake_capture)


@pytest.fixture
def make_ctx(capabilities):
    """Factory for a standalone pipeline context."""

    def _make(topic: str = "grid storage", **config_overrides) -> PipelineContext:
        job_id = "job-test"
        return PipelineContext(
            job_id=job_id,
            topic=topic,
            config=JobConfig(**config_overrides),
            capabilities=capabilities,
            control=JobControl(job_id),
            progress=ProgressTracker(job_id),
            settings=FAST_SETTINGS,
        )

    return _make


@pytest.fixture
def make_queue(capabilities):
    """Factory for a queue service over the fake capabilities."""

    def _make(
        max_concurrent_jobs: int = 5,
        orchestrator=None,
        repo=None,
        report_service: ReportService | None = None,
        sinks=(),
    ) -> JobQueueService:
        return JobQueueService(
            store=JobStore(repo),
            orchestrator=orchestrator or ResearchOrchestrator(),
            report_service=report_service or ReportService(),
            capabilities=capabilities,
            settings=FAST_SETTINGS,
            defaults=ResearchDefaults(),
            max_concurrent_jobs=max_concurrent_jobs,
            sinks=sinks,
        )

    return _make


@pytest.fixture
def wait_until():
    """Poll an async-world condition without sleeping for real time."""

    async def _wait(predicate, timeout: float = 2.0) -> None:
        async def _poll():
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
