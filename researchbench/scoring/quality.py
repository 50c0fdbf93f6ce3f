"""Deterministic research quality assessment over a job's sources and findings."""

from __future__ import annotations

import math
from collections.abc import Sequence

from researchbench.models.assessment import ImprovementArea, QualityAssessment
from researchbench.models.source import SourceRecord
from researchbench.scoring.credibility import host_of

HIGH_CREDIBILITY = 70
LOW_CREDIBILITY = 40
RECOMMENDATION_THRESHOLD = 60
NEUTRAL_SCORE = 50

RECOMMENDATIONS = {
    "diversity": ImprovementArea(
        area="Source Diversity",
        recommendation="Include sources from a wider variety of domains and source types.",
    ),
    "quality": ImprovementArea(
        area="Source Quality",
        recommendation=(
            "Incorporate more high-credibility sources and reduce reliance on "
            "lower-quality sources."
        ),
    ),
    "completeness": ImprovementArea(
        area="Research Completeness",
        recommendation=(
            "Expand key findings and ensure all aspects of the research goal are addressed."
        ),
    ),
    "depth": ImprovementArea(
        area="Research Depth",
        recommendation=(
            "Deepen analysis by exploring more sources and extracting more insights per source."
        ),
    ),
}

QUALITY_RATINGS = (
    (90, "excellent"),
    (80, "very good"),
    (70, "good"),
    (60, "above average"),
    (50, "average"),
    (40, "below average"),
    (30, "poor"),
)


def _tier(value: float, tiers: Sequence[tuple[float, int]]) -> int:
    """Points for the first (threshold, points) pair that `value` reaches."""
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def quality_rating(score: int) -> str:
    for threshold, label in QUALITY_RATINGS:
        if score >= threshold:
            return label
    return "very poor"


def overall_score(*scores: float) -> int:
    valid = [s for s in scores if s is not None and not math.isnan(s)]
    if not valid:
        return NEUTRAL_SCORE
    # half-up rounding, not banker's rounding
    return math.floor(sum(valid) / len(valid) + 0.5)


class QualityAssessor:
    """Computes the four 0-100 sub-scores and their mean."""

    def assess(
        self,
        topic: str,
        sources: Sequence[SourceRecord],
        key_findings: Sequence[str],
        research_goal: str | None = None,
    ) -> QualityAssessment:
        diversity = self.source_diversity(sources)
        quality = self.source_quality(sources)
        completeness = self.completeness(key_findings, research_goal)
        depth = self.research_depth(sources, key_findings)

        scores = {
            "diversity": diversity["score"],
            "quality": quality["score"],
            "completeness": completeness["score"],
            "depth": depth["score"],
        }
        overall = overall_score(*scores.values())
        improvement_areas = tuple(
            RECOMMENDATIONS[name]
            for name, value in scores.items()
            if value < RECOMMENDATION_THRESHOLD
        )
        return QualityAssessment(
            **scores,
            overall=overall,
            rating=quality_rating(overall),
            improvement_areas=improvement_areas,
            details={
                "topic": topic,
                "source_count": len(sources),
                "finding_count": len(key_findings),
                "diversity": diversity,
                "quality": quality,
                "completeness": completeness,
                "depth": depth,
            },
        )

    def source_diversity(self, sources: Sequence[SourceRecord]) -> dict:
        domains = [host_of(s.url) or s.url for s in sources]
        unique_domains = set(domains)
        ratio = len(unique_domains) / len(domains) if domains else 0.0
        source_types = {s.source_type for s in sources if s.source_type and s.source_type != "unknown"}

        score = _tier(ratio, ((0.9, 40), (0.7, 30), (0.5, 20), (0.3, 10)))
        score += _tier(len(source_types), ((5, 40), (4, 30), (3, 20), (2, 10)))
        score += _tier(len(sources), ((10, 20), (7, 15), (5, 10), (3, 5)))
        return {
            "score": min(100, score),
            "unique_domain_count": len(unique_domains),
            "diversity_ratio": ratio,
            "unique_source_type_count": len(source_types),
        }

    def source_quality(self, sources: Sequence[SourceRecord]) -> dict:
        scored = [s.credibility_score for s in sources if s.credibility_score is not None]
        if not scored:
            return {"score": NEUTRAL_SCORE, "average_credibility": None, "scored_sources": 0}

        total = len(sources)
        average = sum(scored) / len(scored)
        high_ratio = sum(1 for c in scored if c >= HIGH_CREDIBILITY) / total
        low_ratio = sum(1 for c in scored if c < LOW_CREDIBILITY) / total
        coverage = len(scored) / total

        score = _tier(average, ((80, 50), (70, 40), (60, 30), (50, 20), (40, 10)))
        score += _tier(high_ratio, ((0.7, 30), (0.5, 20), (0.3, 10)))
        score -= _tier(low_ratio, ((0.5, 20), (0.3, 15), (0.2, 10), (0.1, 5)))
        score += _tier(coverage, ((0.9, 20), (0.7, 15), (0.5, 10), (0.3, 5)))
        return {
            "score": max(0, min(100, score)),
            "average_credibility": average,
            "high_quality_ratio": high_ratio,
            "low_quality_ratio": low_ratio,
            "scored_sources": len(scored),
        }

    def completeness(self, key_findings: Sequence[str], research_goal: str | None = None) -> dict:
        count = len(key_findings)
        average_length = sum(len(f) for f in key_findings) / count if count else 0.0

        score = _tier(count, ((10, 50), (8, 40), (6, 30), (4, 20), (2, 10)))
        score += _tier(average_length, ((150, 25), (100, 20), (75, 15), (50, 10), (25, 5)))
        if research_goal:
            score += 25
        return {
            "score": min(100, score),
            "finding_count": count,
            "average_finding_length": average_length,
            "has_research_goal": bool(research_goal),
        }

    def research_depth(self, sources: Sequence[SourceRecord], key_findings: Sequence[str]) -> dict:
        ratio = len(key_findings) / len(sources) if sources else 0.0

        score = _tier(len(sources), ((12, 50), (10, 40), (8, 30), (6, 20), (4, 10)))
        score += _tier(ratio, ((2.0, 50), (1.5, 40), (1.0, 30), (0.7, 20), (0.5, 10)))
        return {"score": min(100, score), "finding_to_source_ratio": ratio}
