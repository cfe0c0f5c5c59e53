"""
Shared fixtures for the async job client tests.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config
from services.async_jobs import AsyncJobClient, JobStatus, StatusReport, Submission


ARTIFACT_URI = "https://files.example.com/v1/files/abc:download?alt=media"


@pytest.fixture
def config():
    """Config with default values, independent of the test environment."""
    return Config()


@pytest.fixture
def credentials():
    """Credential provider that hands out a new token on every lookup."""
    provider = MagicMock()
    provider.current = MagicMock(side_effect=lambda: f"key-{provider.current.call_count}")
    return provider


@pytest.fixture
def submission_endpoint():
    endpoint = AsyncMock()
    endpoint.create = AsyncMock(return_value=Submission(job_id="operations/job-1"))
    return endpoint


@pytest.fixture
def status_endpoint():
    endpoint = AsyncMock()
    endpoint.get = AsyncMock(
        return_value=StatusReport(status=JobStatus.SUCCEEDED, artifact_ref=ARTIFACT_URI)
    )
    return endpoint


@pytest.fixture
def artifact_endpoint():
    endpoint = AsyncMock()
    endpoint.fetch = AsyncMock(return_value=b"\x00\x00\x00\x18ftypmp42")
    return endpoint


@pytest.fixture
def client(submission_endpoint, status_endpoint, artifact_endpoint, credentials, config):
    return AsyncJobClient(
        submission=submission_endpoint,
        status=status_endpoint,
        artifacts=artifact_endpoint,
        credentials=credentials,
        config=config,
        sleep=AsyncMock(),
    )


def running(count: int) -> list:
    return [StatusReport(status=JobStatus.RUNNING) for _ in range(count)]


def succeeded(artifact_ref: str = ARTIFACT_URI) -> StatusReport:
    return StatusReport(status=JobStatus.SUCCEEDED, artifact_ref=artifact_ref)
