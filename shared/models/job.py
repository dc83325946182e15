"""Pydantic models for queued jobs."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from shared.models.document import utcnow


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobOptions(BaseModel):
    """Per-job retry policy.

    Attributes:
        max_attempts:   How many times the job may run before it is failed for good.
        backoff_delay:  Base delay in seconds; attempt n waits backoff_delay * 2**(n-1).
    """

    max_attempts: int = Field(default=3, ge=1)
    backoff_delay: float = Field(default=2.0, ge=0)


class Job(BaseModel):
    """Queue bookkeeping for one unit of work."""

    id: str
    name: str
    payload: Any = None
    options: JobOptions = JobOptions()
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    progress: int = 0
    failed_reason: str | None = None
    return_value: Any = None
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: datetime | None = None
    finished_at: datetime | None = None

    def next_backoff(self) -> float:
        """Delay before the next attempt, exponential in the attempts made so far."""
        return self.options.backoff_delay * (2 ** (self.attempts_made - 1))

    def has_attempts_left(self) -> bool:
        return self.attempts_made < self.options.max_attempts


class JobStatus(BaseModel):
    """Public snapshot of a job, without its payload."""

    id: str
    state: JobState
    progress: int
    attempts_made: int
    max_attempts: int
    failed_reason: str | None = None
    return_value: Any = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatus":
        return cls(
            id=job.id,
            state=job.state,
            progress=job.progress,
            attempts_made=job.attempts_made,
            max_attempts=job.options.max_attempts,
            failed_reason=job.failed_reason,
            return_value=job.return_value,
        )


class QueueStats(BaseModel):
    waiting: int
    active: int
    delayed: int
    completed: int
    failed: int
