"""Progress event emitted to subscribers while a job runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    percentage: float
    current_phase: str
    phases_completed: tuple[str, ...] = ()
    estimated_time_remaining: float | None = None  # seconds
    processed_urls: int = 0
    total_urls: int = 0
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_doc(self) -> dict:
        return {
            "job_id": self.job_id,
            "percentage": self.percentage,
            "current_phase": self.current_phase,
            "phases_completed": list(self.phases_completed),
            "estimated_time_remaining": self.estimated_time_remaining,
            "processed_urls": self.processed_urls,
            "total_urls": self.total_urls,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
