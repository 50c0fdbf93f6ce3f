"""Report domain model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from researchbench.models.assessment import QualityAssessment
from researchbench.models.source import SourceRecord


class ReportFormat(str, Enum):
    MARKDOWN = "markdown"
    HTML = "html"
    PDF = "pdf"
    DOCX = "docx"


@dataclass(frozen=True)
class ReportSection:
    """One titled section; `source_ids` reference keys of the report's sources map."""

    title: str
    content: str
    source_ids: tuple[str, ...] = ()

    def to_doc(self) -> dict:
        return {"title": self.title, "content": self.content, "source_ids": list(self.source_ids)}

    @classmethod
    def from_doc(cls, doc: dict) -> ReportSection:
        return cls(
            title=doc["title"],
            content=doc.get("content", ""),
            source_ids=tuple(doc.get("source_ids", ())),
        )


@dataclass(frozen=True)
class Report:
    """Final cited research report for a completed job."""

    job_id: str
    topic: str
    executive_summary: str
    key_findings: tuple[str, ...] = ()
    sections: tuple[ReportSection, ...] = ()
    sources: dict[str, SourceRecord] = field(default_factory=dict)
    format: ReportFormat = ReportFormat.MARKDOWN
    quality: QualityAssessment | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not self.job_id:
            raise ValueError("Report must have a job_id")

    def dangling_references(self) -> list[tuple[str, str]]:
        """(section title, source id) pairs that point outside the sources map."""
        return [
            (section.title, source_id)
            for section in self.sections
            for source_id in section.source_ids
            if source_id not in self.sources
        ]

    @property
    def is_consistent(self) -> bool:
        return not self.dangling_references()

    def to_doc(self) -> dict:
        return {
            "_id": self.id,
            "job_id": self.job_id,
            "topic": self.topic,
            "executive_summary": self.executive_summary,
            "key_findings": list(self.key_findings),
            "sections": [s.to_doc() for s in self.sections],
            "sources": {sid: src.to_doc() for sid, src in self.sources.items()},
            "format": self.format.value,
            "quality": self.quality.to_doc() if self.quality else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> Report:
        quality = doc.get("quality")
        return cls(
            id=str(doc["_id"]),
            job_id=doc["job_id"],
            topic=doc.get("topic", ""),
            executive_summary=doc.get("executive_summary", ""),
            key_findings=tuple(doc.get("key_findings", ())),
            sections=tuple(ReportSection.from_doc(s) for s in doc.get("sections", [])),
            sources={
                sid: SourceRecord.from_doc(src) for sid, src in doc.get("sources", {}).items()
            },
            format=ReportFormat(doc.get("format", ReportFormat.MARKDOWN.value)),
            quality=QualityAssessment.from_doc(quality) if quality else None,
            created_at=doc.get("created_at", datetime.now(timezone.utc)),
            updated_at=doc.get("updated_at", datetime.now(timezone.utc)),
        )


@dataclass(frozen=True)
class ReportExport:
    """A consistent report handed to the rendering layer."""

    report: Report
    format: ReportFormat
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
