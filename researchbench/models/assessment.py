"""Scoring results: per-source credibility and per-job research quality."""

from __future__ import annotations

from dataclasses import dataclass, field

SUB_SCORE_NAMES = ("diversity", "quality", "completeness", "depth")


@dataclass(frozen=True)
class CredibilityEvaluation:
    """Breakdown of a single source's credibility score."""

    url: str
    score: int
    rating: str
    domain: str = ""
    domain_reputation: str = "unknown"
    category: str = "unknown"
    secure: bool = False
    tld_reputation: str = "unknown"
    content_factors: dict = field(default_factory=dict)
    metadata_factors: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ImprovementArea:
    area: str
    recommendation: str

    def to_doc(self) -> dict:
        return {"area": self.area, "recommendation": self.recommendation}

    @classmethod
    def from_doc(cls, doc: dict) -> ImprovementArea:
        return cls(area=doc["area"], recommendation=doc.get("recommendation", ""))


@dataclass(frozen=True)
class QualityAssessment:
    """Composite estimate of research rigor for one job."""

    diversity: int
    quality: int
    completeness: int
    depth: int
    overall: int
    rating: str
    improvement_areas: tuple[ImprovementArea, ...] = ()
    details: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in SUB_SCORE_NAMES:
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"Sub-score {name} must be between 0 and 100, got {value}")

    @property
    def sub_scores(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in SUB_SCORE_NAMES}

    @property
    def recommendations(self) -> list[str]:
        return [area.recommendation for area in self.improvement_areas]

    def to_doc(self) -> dict:
        return {
            **self.sub_scores,
            "overall": self.overall,
            "rating": self.rating,
            "improvement_areas": [a.to_doc() for a in self.improvement_areas],
            "details": self.details,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> QualityAssessment:
        return cls(
            diversity=doc["diversity"],
            quality=doc["quality"],
            completeness=doc["completeness"],
            depth=doc["depth"],
            overall=doc["overall"],
            rating=doc["rating"],
            improvement_areas=tuple(
                ImprovementArea.from_doc(a) for a in doc.get("improvement_areas", [])
            ),
            details=doc.get("details", {}),
        )
