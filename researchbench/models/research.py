"""Research domain models: search results, captures and phase statistics."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from researchbench.models.source import SourceRecord


@dataclass(frozen=True)
class SearchResult:
    """A single search result from a search provider."""

    url: str
    title: str = ""
    snippet: str = ""
    engine: str = ""
    score: float = 0.0

    def to_doc(self) -> dict:
        return {
            "url": self.url,
            "title": self.title,
            "snippet": self.snippet,
            "engine": self.engine,
            "score": self.score,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> SearchResult:
        return cls(
            url=doc["url"],
            title=doc.get("title", ""),
            snippet=doc.get("snippet", ""),
            engine=doc.get("engine", ""),
            score=doc.get("score", 0.0),
        )


@dataclass(frozen=True)
class CaptureMetadata:
    """Page-level metadata gathered while capturing a URL."""

    url: str
    final_url: str = ""
    title: str = ""
    author: str = ""
    publish_date: str = ""
    description: str = ""
    status_code: int = 0
    content_length: int = 0
    links: tuple[str, ...] = ()
    image_count: int = 0
    link_count: int = 0
    table_count: int = 0
    form_count: int = 0

    def to_doc(self) -> dict:
        return {
            "url": self.url,
            "final_url": self.final_url,
            "title": self.title,
            "author": self.author,
            "publish_date": self.publish_date,
            "description": self.description,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "links": list(self.links),
            "image_count": self.image_count,
            "link_count": self.link_count,
            "table_count": self.table_count,
            "form_count": self.form_count,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> CaptureMetadata:
        return cls(
            url=doc["url"],
            final_url=doc.get("final_url", ""),
            title=doc.get("title", ""),
            author=doc.get("author", ""),
            publish_date=doc.get("publish_date", ""),
            description=doc.get("description", ""),
            status_code=doc.get("status_code", 0),
            content_length=doc.get("content_length", 0),
            links=tuple(doc.get("links", ())),
            image_count=doc.get("image_count", 0),
            link_count=doc.get("link_count", 0),
            table_count=doc.get("table_count", 0),
            form_count=doc.get("form_count", 0),
        )


@dataclass(frozen=True)
class CaptureResult:
    """Handle returned by a capture provider."""

    capture_id: str
    metadata: CaptureMetadata


@dataclass(frozen=True)
class ExtractedText:
    capture_id: str
    text: str
    title: str = ""


@dataclass(frozen=True)
class VisualAnalysis:
    capture_id: str
    page_title: str = ""
    images: int = 0
    links: int = 0
    tables: int = 0
    forms: int = 0


@dataclass(frozen=True)
class CaptureRecord:
    """A completed capture, keyed by the URL that was requested."""

    url: str
    capture_id: str
    metadata: CaptureMetadata

    def to_doc(self) -> dict:
        return {
            "url": self.url,
            "capture_id": self.capture_id,
            "metadata": self.metadata.to_doc(),
        }

    @classmethod
    def from_doc(cls, doc: dict) -> CaptureRecord:
        return cls(
            url=doc["url"],
            capture_id=doc.get("capture_id", ""),
            metadata=CaptureMetadata.from_doc(doc["metadata"]),
        )


@dataclass(frozen=True)
class EnrichedResult:
    """A search result, optionally correlated with its capture."""

    result: SearchResult
    capture_id: str = ""
    metadata: CaptureMetadata | None = None

    @property
    def is_enriched(self) -> bool:
        return self.metadata is not None

    @property
    def url(self) -> str:
        return self.result.url


@dataclass(frozen=True)
class Candidate:
    """A URL queued for capture and analysis."""

    url: str
    query: str
    title: str = ""
    snippet: str = ""
    iteration: int = 1
    parent_url: str = ""

    def to_doc(self) -> dict:
        return {
            "url": self.url,
            "query": self.query,
            "title": self.title,
            "snippet": self.snippet,
            "iteration": self.iteration,
            "parent_url": self.parent_url,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> Candidate:
        return cls(
            url=doc["url"],
            query=doc.get("query", ""),
            title=doc.get("title", ""),
            snippet=doc.get("snippet", ""),
            iteration=doc.get("iteration", 1),
            parent_url=doc.get("parent_url", ""),
        )


@dataclass(frozen=True)
class PipelineStats:
    """Duration, usage and cost of one pipeline phase."""

    duration_seconds: float = 0.0
    llm_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    searches: int = 0
    captures: int = 0
    retries: int = 0
    failures: int = 0

    def __add__(self, other: PipelineStats) -> PipelineStats:
        return PipelineStats(
            duration_seconds=self.duration_seconds + other.duration_seconds,
            llm_calls=self.llm_calls + other.llm_calls,
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cost=self.cost + other.cost,
            searches=self.searches + other.searches,
            captures=self.captures + other.captures,
            retries=self.retries + other.retries,
            failures=self.failures + other.failures,
        )

    def to_doc(self) -> dict:
        return {
            "duration_seconds": self.duration_seconds,
            "llm_calls": self.llm_calls,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost": self.cost,
            "searches": self.searches,
            "captures": self.captures,
            "retries": self.retries,
            "failures": self.failures,
        }


@dataclass(frozen=True)
class ResearchOutput:
    """Everything the research phase hands to enrichment and synthesis."""

    topic: str
    queries: tuple[str, ...]
    search_results: tuple[SearchResult, ...]
    sources: tuple[SourceRecord, ...]
    captures: tuple[CaptureRecord, ...] = ()
    iterations: int = 1
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_sources(self, sources: tuple[SourceRecord, ...]) -> ResearchOutput:
        return replace(self, sources=tuple(sources))
