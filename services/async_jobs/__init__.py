"""
Async Job Service

Submits remote generation jobs (video clips for now), polls them to
completion and downloads the resulting artifact.
"""

from .batch import BatchItemResult, BatchReport, run_batch
from .client import AsyncJobClient, build_authenticated_url
from .endpoints import HttpOperationsEndpoints, VideoPrompt
from .errors import (
    AsyncJobError,
    DownloadError,
    EndpointError,
    InvalidTransition,
    JobTimeoutError,
    RemoteJobError,
    SubmissionError,
)
from .models import ErrorDetail, Job, JobStatus, PollConfig, StatusReport, SubmitOptions, Submission

__all__ = [
    "AsyncJobClient",
    "build_authenticated_url",
    "HttpOperationsEndpoints",
    "VideoPrompt",
    "run_batch",
    "BatchReport",
    "BatchItemResult",
    "Job",
    "JobStatus",
    "ErrorDetail",
    "PollConfig",
    "StatusReport",
    "SubmitOptions",
    "Submission",
    "AsyncJobError",
    "SubmissionError",
    "JobTimeoutError",
    "RemoteJobError",
    "DownloadError",
    "EndpointError",
    "InvalidTransition",
]
