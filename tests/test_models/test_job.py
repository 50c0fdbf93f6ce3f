"""Tests for ResearchJob models."""

import pytest

from researchbench.errors import ValidationError
from researchbench.models.job import (
    CursorPhase,
    JobConfig,
    JobPriority,
    JobProgress,
    JobStatus,
    ResearchJob,
    StageCursor,
)
from researchbench.models.research import Candidate, SearchResult
from researchbench.models.source import SourceRecord


class TestJobStatus:
    def test_terminal_states(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.CANCELLED.is_terminal
        assert not JobStatus.PAUSED.is_terminal

    def test_documented_transitions(self):
        assert JobStatus.PENDING.can_transition_to(JobStatus.RUNNING)
        assert JobStatus.RUNNING.can_transition_to(JobStatus.PAUSED)
        assert JobStatus.PAUSED.can_transition_to(JobStatus.RUNNING)
        assert JobStatus.PAUSED.can_transition_to(JobStatus.CANCELLED)

    def test_invalid_transitions(self):
        assert not JobStatus.PENDING.can_transition_to(JobStatus.PAUSED)
        assert not JobStatus.CANCELLED.can_transition_to(JobStatus.CANCELLED)
        assert not JobStatus.COMPLETED.can_transition_to(JobStatus.RUNNING)


class TestJobConfig:
    def test_defaults(self):
        config = JobConfig()
        assert config.max_iterations == 5
        assert config.max_parallel_searches == 10
        assert config.min_sources == 3
        assert config.max_sources == 10

    def test_min_above_max_raises(self):
        with pytest.raises(ValidationError, match="cannot exceed"):
            JobConfig(min_sources=6, max_sources=5)

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError, match="information_gain_threshold"):
            JobConfig(information_gain_threshold=1.5)

    def test_merged_overrides(self):
        config = JobConfig().merged({"max_sources": 5, "excluded_domains": ["a.com"]})
        assert config.max_sources == 5
        assert config.excluded_domains == ("a.com",)

    def test_merged_unknown_key_raises(self):
        with pytest.raises(ValidationError, match="Unknown job config keys"):
            JobConfig().merged({"breadth": 4})

    def test_effective_iterations(self):
        assert JobConfig(follow_links=False).effective_iterations == 1
        assert JobConfig(max_iterations=5, max_depth=2).effective_iterations == 2
        assert JobConfig(max_iterations=1, max_depth=3).effective_iterations == 1

    def test_doc_roundtrip(self):
        config = JobConfig(max_sources=7, research_goal="costs")
        assert JobConfig.from_doc(config.to_doc()) == config


class TestJobProgress:
    def test_advanced_never_decreases(self):
        progress = JobProgress(processed_urls=5, total_urls=10, percentage=40.0)
        merged = progress.advanced(JobProgress(processed_urls=3, total_urls=8, percentage=20.0))
        assert merged.processed_urls == 5
        assert merged.total_urls == 10
        assert merged.percentage == 40.0

    def test_advanced_accumulates_phases(self):
        progress = JobProgress(phases_completed=("queries",))
        merged = progress.advanced(
            JobProgress(current_phase="search", phases_completed=("queries", "search"))
        )
        assert merged.phases_completed == ("queries", "search")
        assert merged.current_phase == "search"


class TestStageCursor:
    def test_with_search_results_replaces_query_entry(self):
        result = SearchResult(url="https://a.example.org")
        cursor = StageCursor(queries=("q1",)).with_search_results("q1", ())
        cursor = cursor.with_search_results("q1", (result,))
        assert cursor.completed_queries == {"q1": (result,)}

    def test_doc_roundtrip(self):
        cursor = StageCursor(
            phase=CursorPhase.ANALYSIS,
            queries=("q1", "q2"),
            search_results=(("q1", (SearchResult(url="https://a.example.org", score=0.5),)),),
            iteration=2,
            frontier=(Candidate(url="https://a.example.org", query="q1"),),
            visited=("https://a.example.org",),
            sources=(SourceRecord(url="https://a.example.org", credibility_score=60),),
        )
        restored = StageCursor.from_doc(cursor.to_doc())
        assert restored.phase == CursorPhase.ANALYSIS
        assert restored.completed_queries["q1"][0].score == 0.5
        assert restored.frontier == cursor.frontier
        assert restored.sources[0].id == cursor.sources[0].id

    def test_from_empty_doc(self):
        assert StageCursor.from_doc(None) == StageCursor()


class TestResearchJob:
    def test_create(self):
        job = ResearchJob(topic="grid storage")
        assert job.status == JobStatus.PENDING
        assert job.priority == JobPriority.NORMAL
        assert job.id

    def test_blank_topic_raises(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            ResearchJob(topic="   ")

    def test_report_id_only_when_completed(self):
        with pytest.raises(ValueError, match="report_id"):
            ResearchJob(topic="t", report_id="r1")
        with pytest.raises(ValueError, match="report_id"):
            ResearchJob(topic="t", status=JobStatus.COMPLETED)

    def test_with_status_stamps_times(self):
        job = ResearchJob(topic="t").with_status(JobStatus.RUNNING)
        assert job.started_at is not None
        assert job.completed_at is None
        done = job.with_status(JobStatus.COMPLETED, report_id="r1")
        assert done.completed_at is not None
        assert done.started_at == job.started_at

    def test_doc_roundtrip(self):
        job = ResearchJob(topic="t", priority=JobPriority.HIGH, owner_id="u1")
        doc = job.to_doc()
        assert doc["_id"] == job.id
        restored = ResearchJob.from_doc(doc)
        assert restored.priority == JobPriority.HIGH
        assert restored.owner_id == "u1"
        assert restored.status == JobStatus.PENDING
