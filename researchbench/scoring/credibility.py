"""Deterministic source credibility scoring.

A score starts at a neutral 50 and moves with fixed weights for the domain's
known reputation, transport security, TLD tier, content markers and capture
metadata. The weights are part of the scoring contract; changing any of them
changes every stored credibility score.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from researchbench.models.assessment import CredibilityEvaluation

logger = logging.getLogger(__name__)

BASE_SCORE = 50

# domain -> (reputation, category); matched when the host contains the domain
KNOWN_SOURCES: dict[str, tuple[str, str]] = {
    "wikipedia.org": ("medium", "encyclopedia"),
    "bbc.com": ("high", "news"),
    "cnn.com": ("medium", "news"),
    "github.com": ("medium", "technology"),
    "arxiv.org": ("high", "academic"),
    "nature.com": ("very high", "academic"),
    "medium.com": ("low", "blog"),
}

REPUTATION_WEIGHTS = {"very high": 25, "high": 15, "medium": 5, "low": -10}

TLD_REPUTATION = {
    "edu": "high",
    "gov": "high",
    "org": "medium",
    "com": "medium",
    "net": "medium",
    "io": "medium",
    "info": "low",
    "biz": "low",
}
TLD_WEIGHTS = {"high": 10, "medium": 5, "low": -5}

TLD_SOURCE_TYPES = {
    "edu": "academic",
    "gov": "government",
    "org": "organization",
    "com": "commercial",
}

REFERENCE_MARKERS = ("reference", "citation", "source")
LONG_CONTENT_CHARS = 2000
RECENT_WINDOW = timedelta(days=365)
DEFAULT_READABILITY = "medium"

RATING_BANDS = (
    (80, "very high"),
    (60, "high"),
    (40, "medium"),
    (20, "low"),
)


def credibility_rating(score: int) -> str:
    for threshold, label in RATING_BANDS:
        if score >= threshold:
            return label
    return "very low"


def host_of(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def lookup_domain(host: str) -> tuple[str, str]:
    """Return (reputation, category) for a host, or ("unknown", "unknown")."""
    for domain, info in KNOWN_SOURCES.items():
        if domain in host:
            return info
    return ("unknown", "unknown")


def tld_reputation(host: str) -> str:
    tld = host.rsplit(".", 1)[-1] if host else ""
    return TLD_REPUTATION.get(tld, "unknown")


def source_type_for(url: str) -> str:
    """Classify a URL: known-domain category first, then the TLD family."""
    host = host_of(url)
    _, category = lookup_domain(host)
    if category != "unknown":
        return category
    tld = host.rsplit(".", 1)[-1] if host else ""
    return TLD_SOURCE_TYPES.get(tld, "unknown")


def parse_publish_date(value) -> datetime | None:
    """Parse an ISO-8601 date or datetime; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable publish date: %s", value)
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CredibilityEvaluator:
    """Scores one source from its URL, optional text and optional metadata."""

    def evaluate(
        self,
        url: str,
        content: str | None = None,
        metadata: Mapping | None = None,
        *,
        now: datetime | None = None,
    ) -> CredibilityEvaluation:
        host = host_of(url)
        reputation, category = lookup_domain(host)
        secure = url.startswith("https")
        tld_tier = tld_reputation(host)

        score = BASE_SCORE
        score += REPUTATION_WEIGHTS.get(reputation, 0)
        if secure:
            score += 5
        score += TLD_WEIGHTS.get(tld_tier, 0)

        content_factors: dict = {}
        if content:
            readability = DEFAULT_READABILITY
            if metadata and metadata.get("readability"):
                readability = str(metadata["readability"])
            content_factors = {
                "content_length": len(content),
                "has_references": any(marker in content for marker in REFERENCE_MARKERS),
                "readability": readability,
            }
            if content_factors["has_references"]:
                score += 10
            if content_factors["content_length"] > LONG_CONTENT_CHARS:
                score += 5
            if readability == "high":
                score += 5

        metadata_factors: dict = {}
        if metadata is not None:
            published = parse_publish_date(metadata.get("publish_date"))
            current = now or datetime.now(timezone.utc)
            metadata_factors = {
                "has_author": bool(metadata.get("author")),
                "has_publish_date": bool(metadata.get("publish_date")),
                "is_recent": published is not None and current - published < RECENT_WINDOW,
            }
            for factor in ("has_author", "has_publish_date", "is_recent"):
                if metadata_factors[factor]:
                    score += 5

        score = max(0, min(100, score))
        return CredibilityEvaluation(
            url=url,
            score=score,
            rating=credibility_rating(score),
            domain=host,
            domain_reputation=reputation,
            category=category,
            secure=secure,
            tld_reputation=tld_tier,
            content_factors=content_factors,
            metadata_factors=metadata_factors,
        )

    def score(self, url: str, content: str | None = None, metadata: Mapping | None = None) -> int:
        return self.evaluate(url, content, metadata).score
