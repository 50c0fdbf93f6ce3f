"""Error taxonomy for research jobs."""

from __future__ import annotations


class ResearchBenchError(Exception):
    """Base class for all researchbench errors."""


class ValidationError(ResearchBenchError, ValueError):
    """Rejected input; the job is never created."""


class TransientExternalError(ResearchBenchError):
    """A search, completion or capture call failed or timed out."""

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class PipelineFailure(ResearchBenchError):
    """A phase could not reach its minimum viable output."""

    def __init__(self, message: str, phase: str = "") -> None:
        super().__init__(message)
        self.phase = phase


class JobNotFound(ResearchBenchError, LookupError):
    """No job with the given id is registered."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class StateConflict(ResearchBenchError):
    """A control action is invalid for the job's current status."""

    def __init__(self, job_id: str, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} job {job_id}: job status is {status}")
        self.job_id = job_id
        self.action = action
        self.status = status


class JobSuspended(ResearchBenchError):
    """Raised at a checkpoint when the job has been paused."""


class JobCancelled(ResearchBenchError):
    """Raised at a checkpoint when the job has been cancelled."""


class ReportNotFound(ResearchBenchError, LookupError):
    """A completed job points at a report that is not stored."""

    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id
