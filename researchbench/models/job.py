"""Research job domain model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum

from researchbench.errors import ValidationError
from researchbench.models.research import Candidate, CaptureRecord, SearchResult
from researchbench.models.source import SourceRecord


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def can_transition_to(self, target: JobStatus) -> bool:
        return target in _TRANSITIONS[self]


# A paused job may still complete or fail when the pause lands after its last
# checkpoint; the work is already done by then.
_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PAUSED: frozenset(
        {JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class JobPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2


@dataclass(frozen=True)
class JobConfig:
    """Per-job research limits."""

    max_iterations: int = 5
    max_parallel_searches: int = 10
    follow_links: bool = True
    max_links_per_page: int = 3
    information_gain_threshold: float = 0.2
    min_sources: int = 3
    max_sources: int = 10
    results_per_query: int = 8
    max_depth: int = 2
    research_goal: str = ""
    report_format: str = "markdown"
    excluded_domains: tuple[str, ...] = ("pinterest.com", "quora.com")

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValidationError("max_iterations must be >= 1")
        if self.max_parallel_searches < 1:
            raise ValidationError("max_parallel_searches must be >= 1")
        if self.max_links_per_page < 0:
            raise ValidationError("max_links_per_page must be >= 0")
        if not 0.0 <= self.information_gain_threshold <= 1.0:
            raise ValidationError("information_gain_threshold must be between 0.0 and 1.0")
        if self.min_sources < 0:
            raise ValidationError("min_sources must be >= 0")
        if self.max_sources < 1:
            raise ValidationError("max_sources must be >= 1")
        if self.min_sources > self.max_sources:
            raise ValidationError("min_sources cannot exceed max_sources")
        if self.results_per_query < 1:
            raise ValidationError("results_per_query must be >= 1")
        if self.max_depth < 1:
            raise ValidationError("max_depth must be >= 1")

    @property
    def effective_iterations(self) -> int:
        """Link-following depth: 1 when links are not followed."""
        if not self.follow_links or self.max_links_per_page == 0:
            return 1
        return min(self.max_iterations, self.max_depth)

    def merged(self, overrides: dict | None) -> JobConfig:
        """Return a copy with the known keys of `overrides` applied."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValidationError(f"Unknown job config keys: {', '.join(sorted(unknown))}")
        changes = dict(overrides)
        if "excluded_domains" in changes:
            changes["excluded_domains"] = tuple(changes["excluded_domains"])
        return replace(self, **changes)

    def to_doc(self) -> dict:
        doc = {f.name: getattr(self, f.name) for f in fields(self)}
        doc["excluded_domains"] = list(self.excluded_domains)
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> JobConfig:
        return cls().merged({k: v for k, v in doc.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class JobProgress:
    """Run progress; numeric fields never decrease within a run."""

    current_iteration: int = 0
    processed_urls: int = 0
    total_urls: int = 0
    current_phase: str = ""
    percentage: float = 0.0
    phases_completed: tuple[str, ...] = ()

    def advanced(self, update: JobProgress) -> JobProgress:
        """Merge an update without letting any counter move backwards."""
        phases = list(self.phases_completed)
        for phase in update.phases_completed:
            if phase not in phases:
                phases.append(phase)
        return JobProgress(
            current_iteration=max(self.current_iteration, update.current_iteration),
            processed_urls=max(self.processed_urls, update.processed_urls),
            total_urls=max(self.total_urls, update.total_urls),
            current_phase=update.current_phase or self.current_phase,
            percentage=max(self.percentage, update.percentage),
            phases_completed=tuple(phases),
        )

    def to_doc(self) -> dict:
        return {
            "current_iteration": self.current_iteration,
            "processed_urls": self.processed_urls,
            "total_urls": self.total_urls,
            "current_phase": self.current_phase,
            "percentage": self.percentage,
            "phases_completed": list(self.phases_completed),
        }

    @classmethod
    def from_doc(cls, doc: dict) -> JobProgress:
        if not doc:
            return cls()
        return cls(
            current_iteration=doc.get("current_iteration", 0),
            processed_urls=doc.get("processed_urls", 0),
            total_urls=doc.get("total_urls", 0),
            current_phase=doc.get("current_phase", ""),
            percentage=doc.get("percentage", 0.0),
            phases_completed=tuple(doc.get("phases_completed", ())),
        )


class CursorPhase(str, Enum):
    """Last stage whose output is fully materialized on the cursor."""

    NONE = ""
    QUERIES = "queries"
    SEARCH = "search"
    ANALYSIS = "analysis"
    RESEARCH = "research"


@dataclass(frozen=True)
class StageCursor:
    """Resumable position of a job inside the research phase.

    `visited` lists every URL already attempted; within the current
    `frontier` it doubles as the sub-index of the analysis batch.
    """

    phase: CursorPhase = CursorPhase.NONE
    queries: tuple[str, ...] = ()
    search_results: tuple[tuple[str, tuple[SearchResult, ...]], ...] = ()
    iteration: int = 1
    frontier: tuple[Candidate, ...] = ()
    next_frontier: tuple[Candidate, ...] = ()
    visited: tuple[str, ...] = ()
    sources: tuple[SourceRecord, ...] = ()
    captures: tuple[CaptureRecord, ...] = ()

    @property
    def completed_queries(self) -> dict[str, tuple[SearchResult, ...]]:
        return dict(self.search_results)

    @property
    def research_complete(self) -> bool:
        return self.phase == CursorPhase.RESEARCH

    def with_search_results(self, query: str, results: tuple[SearchResult, ...]) -> StageCursor:
        done = [(q, r) for q, r in self.search_results if q != query]
        done.append((query, tuple(results)))
        return replace(self, search_results=tuple(done))

    def to_doc(self) -> dict:
        return {
            "phase": self.phase.value,
            "queries": list(self.queries),
            "search_results": [
                {"query": q, "results": [r.to_doc() for r in results]}
                for q, results in self.search_results
            ],
            "iteration": self.iteration,
            "frontier": [c.to_doc() for c in self.frontier],
            "next_frontier": [c.to_doc() for c in self.next_frontier],
            "visited": list(self.visited),
            "sources": [s.to_doc() for s in self.sources],
            "captures": [c.to_doc() for c in self.captures],
        }

    @classmethod
    def from_doc(cls, doc: dict | None) -> StageCursor:
        if not doc:
            return cls()
        return cls(
            phase=CursorPhase(doc.get("phase", "")),
            queries=tuple(doc.get("queries", ())),
            search_results=tuple(
                (entry["query"], tuple(SearchResult.from_doc(r) for r in entry.get("results", [])))
                for entry in doc.get("search_results", [])
            ),
            iteration=doc.get("iteration", 1),
            frontier=tuple(Candidate.from_doc(c) for c in doc.get("frontier", [])),
            next_frontier=tuple(Candidate.from_doc(c) for c in doc.get("next_frontier", [])),
            visited=tuple(doc.get("visited", ())),
            sources=tuple(SourceRecord.from_doc(s) for s in doc.get("sources", [])),
            captures=tuple(CaptureRecord.from_doc(c) for c in doc.get("captures", [])),
        )


@dataclass(frozen=True)
class ResearchJob:
    """One research request's full lifecycle record."""

    topic: str
    status: JobStatus = JobStatus.PENDING
    config: JobConfig = field(default_factory=JobConfig)
    progress: JobProgress = field(default_factory=JobProgress)
    priority: JobPriority = JobPriority.NORMAL
    owner_id: str = ""
    cursor: StageCursor = field(default_factory=StageCursor)
    error_message: str = ""
    report_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not self.topic or not self.topic.strip():
            raise ValidationError("Research topic cannot be empty")
        if bool(self.report_id) != (self.status == JobStatus.COMPLETED):
            raise ValueError("report_id must be set if and only if the job is completed")

    def with_status(self, status: JobStatus, **changes) -> ResearchJob:
        """Return a copy in `status`, stamping the lifecycle timestamps."""
        now = datetime.now(timezone.utc)
        if status == JobStatus.RUNNING and self.started_at is None:
            changes.setdefault("started_at", now)
        if status.is_terminal:
            changes.setdefault("completed_at", now)
        return replace(self, status=status, updated_at=now, **changes)

    def with_progress(self, progress: JobProgress) -> ResearchJob:
        return replace(
            self,
            progress=self.progress.advanced(progress),
            updated_at=datetime.now(timezone.utc),
        )

    def with_cursor(self, cursor: StageCursor) -> ResearchJob:
        return replace(self, cursor=cursor, updated_at=datetime.now(timezone.utc))

    def to_doc(self) -> dict:
        return {
            "_id": self.id,
            "topic": self.topic,
            "status": self.status.value,
            "config": self.config.to_doc(),
            "progress": self.progress.to_doc(),
            "priority": int(self.priority),
            "owner_id": self.owner_id,
            "cursor": self.cursor.to_doc(),
            "error_message": self.error_message,
            "report_id": self.report_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> ResearchJob:
        return cls(
            id=str(doc["_id"]),
            topic=doc["topic"],
            status=JobStatus(doc["status"]),
            config=JobConfig.from_doc(doc.get("config", {})),
            progress=JobProgress.from_doc(doc.get("progress", {})),
            priority=JobPriority(doc.get("priority", JobPriority.NORMAL)),
            owner_id=doc.get("owner_id", ""),
            cursor=StageCursor.from_doc(doc.get("cursor")),
            error_message=doc.get("error_message", ""),
            report_id=doc.get("report_id", ""),
            created_at=doc.get("created_at", datetime.now(timezone.utc)),
            updated_at=doc.get("updated_at", datetime.now(timezone.utc)),
            started_at=doc.get("started_at"),
            completed_at=doc.get("completed_at"),
        )
