"""Source record domain model."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from researchbench.models.research import CaptureMetadata


def source_id_for(url: str) -> str:
    """Stable per-job source id derived from the URL."""
    return "src-" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class SourceRecord:
    """A single web document discovered and evaluated during research."""

    url: str
    title: str = ""
    content: str = ""
    summary: str = ""
    key_points: tuple[str, ...] = ()
    credibility_score: int | None = None
    source_type: str = "unknown"
    query: str = ""
    iteration: int = 1
    relevance: float = 0.0
    author: str = ""
    publish_date: str = ""
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = ""

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Source must have a url")
        if self.credibility_score is not None and not 0 <= self.credibility_score <= 100:
            raise ValueError("Credibility score must be between 0 and 100")
        if not self.id:
            object.__setattr__(self, "id", source_id_for(self.url))

    @property
    def has_capture_metadata(self) -> bool:
        return bool(self.author or self.publish_date)

    def with_capture_metadata(self, metadata: CaptureMetadata) -> SourceRecord:
        """Return a copy carrying the author/publish date from a capture."""
        return replace(
            self,
            author=metadata.author or self.author,
            publish_date=metadata.publish_date or self.publish_date,
            title=self.title or metadata.title,
        )

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "key_points": list(self.key_points),
            "credibility_score": self.credibility_score,
            "source_type": self.source_type,
            "query": self.query,
            "iteration": self.iteration,
            "relevance": self.relevance,
            "author": self.author,
            "publish_date": self.publish_date,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> SourceRecord:
        return cls(
            id=doc.get("id", ""),
            url=doc["url"],
            title=doc.get("title", ""),
            content=doc.get("content", ""),
            summary=doc.get("summary", ""),
            key_points=tuple(doc.get("key_points", ())),
            credibility_score=doc.get("credibility_score"),
            source_type=doc.get("source_type", "unknown"),
            query=doc.get("query", ""),
            iteration=doc.get("iteration", 1),
            relevance=doc.get("relevance", 0.0),
            author=doc.get("author", ""),
            publish_date=doc.get("publish_date", ""),
            captured_at=doc.get("captured_at", datetime.now(timezone.utc)),
        )
