"""
Job state and request/response records for the async job client.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .errors import InvalidTransition


class JobStatus(str, Enum):
    """Lifecycle of a remote asynchronous job."""
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMED_OUT})

# Aspect ratios the video model accepts; anything else falls back to 16:9
SUPPORTED_ASPECT_RATIOS = ("16:9", "9:16")


@dataclass(frozen=True)
class ErrorDetail:
    """Remote-supplied failure description."""
    message: str
    code: Optional[str] = None
    status_code: Optional[int] = None

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


@dataclass
class SubmitOptions:
    """Target format options; every field falls back to a documented default."""
    model: Optional[str] = None            # Configured model when unset
    aspect_ratio: Optional[str] = None     # 16:9
    resolution: Optional[str] = None       # 720p
    sample_count: Optional[int] = None     # 1

    def resolved_aspect_ratio(self) -> str:
        if self.aspect_ratio in SUPPORTED_ASPECT_RATIOS:
            return self.aspect_ratio
        return "16:9"

    def resolved_resolution(self) -> str:
        return self.resolution or "720p"

    def resolved_sample_count(self) -> int:
        return self.sample_count or 1


@dataclass
class PollConfig:
    """Poll loop settings for one `await_completion` call."""
    poll_interval_seconds: float = 10.0
    max_attempts: int = 120
    on_progress: Optional[Callable[[int], None]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.poll_interval_seconds < 0:
            raise ValueError("poll_interval_seconds must not be negative")


@dataclass(frozen=True)
class Submission:
    """What the submission endpoint returns."""
    job_id: str
    initial_status: JobStatus = JobStatus.SUBMITTED


@dataclass(frozen=True)
class StatusReport:
    """What the status endpoint returns for one poll."""
    status: JobStatus
    artifact_ref: Optional[str] = None
    error_detail: Optional[ErrorDetail] = None


@dataclass
class Job:
    """
    One outstanding remote generation request.

    Mutated only by the client. Transitions are monotonic:
    SUBMITTED -> RUNNING* -> (SUCCEEDED | FAILED | TIMED_OUT).
    """
    id: str
    status: JobStatus = JobStatus.SUBMITTED
    attempts_made: int = 0
    artifact_ref: Optional[str] = None
    error_detail: Optional[ErrorDetail] = None

    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _transition(self, new_status: JobStatus):
        if self.status.is_terminal:
            raise InvalidTransition(self.id, self.status.value, new_status.value)
        if new_status == JobStatus.SUBMITTED and self.status != JobStatus.SUBMITTED:
            raise InvalidTransition(self.id, self.status.value, new_status.value)
        self.status = new_status
        if new_status.is_terminal:
            self.finished_at = datetime.now(timezone.utc)

    def mark_running(self):
        if self.status != JobStatus.RUNNING:
            self._transition(JobStatus.RUNNING)

    def mark_succeeded(self, artifact_ref: str):
        if not artifact_ref:
            raise ValueError("A succeeded job needs an artifact reference")
        self._transition(JobStatus.SUCCEEDED)
        self.artifact_ref = artifact_ref

    def mark_failed(self, detail: ErrorDetail):
        self._transition(JobStatus.FAILED)
        self.error_detail = detail

    def mark_timed_out(self):
        self._transition(JobStatus.TIMED_OUT)
