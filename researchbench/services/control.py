"""Per-job pause/cancel signal checked at stage boundaries."""

from __future__ import annotations

from researchbench.errors import JobCancelled, JobSuspended


class JobControl:
    """Cooperative control flags for one running job.

    The queue sets the flags; the pipeline calls `checkpoint()` at every stage
    boundary and before every external call.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._pause_requested = False
        self._cancel_requested = False

    @property
    def paused(self) -> bool:
        return self._pause_requested

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def request_pause(self) -> None:
        self._pause_requested = True

    def clear_pause(self) -> None:
        self._pause_requested = False

    def request_cancel(self) -> None:
        self._cancel_requested = True

    def checkpoint(self) -> None:
        """Raise the pending control signal, cancellation first."""
        if self._cancel_requested:
            raise JobCancelled(f"Job {self.job_id} was cancelled")
        if self._pause_requested:
            raise JobSuspended(f"Job {self.job_id} was paused")
