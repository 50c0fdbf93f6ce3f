"""Tests for the credibility evaluator."""

from datetime import datetime, timedelta, timezone

import pytest

from researchbench.scoring.credibility import (
    CredibilityEvaluator,
    credibility_rating,
    parse_publish_date,
    source_type_for,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def evaluator():
    return CredibilityEvaluator()


class TestCredibilityEvaluator:
    def test_url_only_unknown_domain(self, evaluator):
        # base 50 + https 5 + .org medium 5
        result = evaluator.evaluate("https://example.org/page")
        assert result.score == 60
        assert result.rating == "high"
        assert result.domain_reputation == "unknown"
        assert result.content_factors == {}
        assert result.metadata_factors == {}

    def test_known_domain(self, evaluator):
        # base 50 + very high 25 + https 5 + .com medium 5
        result = evaluator.evaluate("https://www.nature.com/articles/x")
        assert result.score == 85
        assert result.category == "academic"
        assert result.rating == "very high"

    def test_insecure_low_reputation(self, evaluator):
        # base 50 + low -10 + .com medium 5
        result = evaluator.evaluate("http://medium.com/@someone/post")
        assert result.score == 45
        assert not result.secure

    def test_content_factors(self, evaluator):
        content = "See the reference list below. " + "x" * 2000
        result = evaluator.evaluate("http://example.info", content)
        # base 50 + .info low -5 + references 10 + long 5
        assert result.score == 60
        assert result.content_factors["has_references"] is True
        assert result.content_factors["readability"] == "medium"

    def test_reference_markers_are_case_sensitive(self, evaluator):
        result = evaluator.evaluate("http://example.info", "REFERENCES and CITATIONS")
        assert result.content_factors["has_references"] is False

    def test_metadata_factors(self, evaluator):
        metadata = {"author": "Ada", "publish_date": (NOW - timedelta(days=10)).isoformat()}
        result = evaluator.evaluate("http://example.info", None, metadata, now=NOW)
        # base 50 - 5 + author 5 + date 5 + recent 5
        assert result.score == 60
        assert result.metadata_factors == {
            "has_author": True,
            "has_publish_date": True,
            "is_recent": True,
        }

    def test_old_publish_date_not_recent(self, evaluator):
        metadata = {"publish_date": "2001-01-01"}
        result = evaluator.evaluate("http://example.info", None, metadata, now=NOW)
        assert result.metadata_factors["is_recent"] is False

    def test_score_is_clamped(self, evaluator):
        content = "source " * 400
        metadata = {
            "author": "Ada",
            "publish_date": NOW.isoformat(),
            "readability": "high",
        }
        result = evaluator.evaluate("https://www.nature.com", content, metadata, now=NOW)
        assert result.score == 100

    @pytest.mark.parametrize("url", [
        "", "not a url", "ftp://weird.biz", "https://[::1", "https://nature.com",
    ])
    def test_score_always_in_range(self, evaluator, url):
        result = evaluator.evaluate(url, "text", {"author": None})
        assert 0 <= result.score <= 100
        assert result.rating == credibility_rating(result.score)


class TestHelpers:
    @pytest.mark.parametrize("score,rating", [
        (100, "very high"), (80, "very high"), (79, "high"), (60, "high"),
        (59, "medium"), (40, "medium"), (39, "low"), (20, "low"), (19, "very low"), (0, "very low"),
    ])
    def test_rating_bands(self, score, rating):
        assert credibility_rating(score) == rating

    def test_source_type(self):
        assert source_type_for("https://arxiv.org/abs/1") == "academic"
        assert source_type_for("https://www.energy.gov/storage") == "government"
        assert source_type_for("https://mit.edu") == "academic"
        assert source_type_for("https://example.xyz") == "unknown"

    def test_parse_publish_date(self):
        parsed = parse_publish_date("2024-05-01T10:00:00Z")
        assert parsed == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        assert parse_publish_date("2024-05-01").tzinfo == timezone.utc
        assert parse_publish_date("yesterday") is None
        assert parse_publish_date(None) is None
