"""
Async Job Client

Drives one remote generation request from submission to downloaded
artifact bytes:

    submit -> poll (fixed interval, bounded attempts) -> download

Features:
- Fresh credential lookup before every remote call (never cached)
- Transient poll failures consume an attempt but do not fail the job
- Permission/not-found failures are fatal and flagged for the caller
- Progress callback per poll attempt for UI/CLI feedback
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

from core.config import Config, get_config
from core.credentials import CredentialProvider, CredentialUnavailable, EnvCredentialProvider

from .endpoints import ArtifactEndpoint, HttpOperationsEndpoints, StatusEndpoint, SubmissionEndpoint
from .errors import (
    DownloadError,
    EndpointError,
    JobTimeoutError,
    RemoteJobError,
    SubmissionError,
    is_permission_issue,
)
from .models import ErrorDetail, Job, JobStatus, PollConfig, StatusReport, SubmitOptions

logger = logging.getLogger(__name__)


def build_authenticated_url(base_url: str, credential: str, param: str = "key") -> str:
    """Append the credential as a query parameter."""
    joiner = "&" if "?" in base_url else "?"
    return f"{base_url}{joiner}{param}={quote(credential, safe='')}"


def redact_url(url: str) -> str:
    """Strip the query string so a credential never reaches the logs."""
    return url.split("?", 1)[0]


class AsyncJobClient:
    """
    Client for remote long-running generation jobs.

    Usage:
        client = AsyncJobClient.from_config()

        job = await client.submit(VideoPrompt("A paper boat in the rain"), SubmitOptions(aspect_ratio="9:16"))
        video = await client.await_completion(job, PollConfig(on_progress=print))

        # Or in one call
        video = await client.run(VideoPrompt("A paper boat in the rain"))
    """

    def __init__(
        self,
        submission: SubmissionEndpoint,
        status: StatusEndpoint,
        artifacts: ArtifactEndpoint,
        credentials: CredentialProvider,
        config: Optional[Config] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.submission = submission
        self.status = status
        self.artifacts = artifacts
        self.credentials = credentials
        self.config = config or get_config()
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        credentials: Optional[CredentialProvider] = None,
    ) -> "AsyncJobClient":
        """Client over the HTTP endpoints, reading the key from the environment."""
        config = config or get_config()
        endpoints = HttpOperationsEndpoints(config)
        return cls(
            submission=endpoints,
            status=endpoints,
            artifacts=endpoints,
            credentials=credentials or EnvCredentialProvider(config.api.credential_env_vars),
            config=config,
        )

    async def close(self):
        """Close any endpoint that holds a connection pool."""
        closed = set()
        for endpoint in (self.submission, self.status, self.artifacts):
            close = getattr(endpoint, "close", None)
            if close is None or id(endpoint) in closed:
                continue
            closed.add(id(endpoint))
            await close()

    async def __aenter__(self) -> "AsyncJobClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def default_poll_config(self, on_progress: Optional[Callable[[int], None]] = None) -> PollConfig:
        return PollConfig(
            poll_interval_seconds=self.config.polling.poll_interval_seconds,
            max_attempts=self.config.polling.max_attempts,
            on_progress=on_progress,
        )

    async def _credential(self) -> str:
        token = self.credentials.current()
        if inspect.isawaitable(token):
            token = await token
        if not token:
            raise CredentialUnavailable("Credential provider returned an empty token")
        return token

    def _is_permission(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None) -> bool:
        return is_permission_issue(
            message,
            code=code,
            status_code=status_code,
            signatures=self.config.errors.permission_signatures,
        )

    def _emit_progress(self, config: PollConfig, attempt: int):
        """Emit progress update via callback."""
        if config.on_progress:
            try:
                config.on_progress(attempt)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def submit(self, payload: Any, options: Optional[SubmitOptions] = None) -> Job:
        """
        Create the remote job.

        Args:
            payload: Caller-defined description of the artifact (passed through to the endpoint)
            options: Target format options; unset fields use their defaults

        Returns:
            Job in SUBMITTED (or RUNNING) state

        Raises:
            SubmissionError: The call failed or the response was malformed. Not retried.
        """
        options = options or SubmitOptions()

        try:
            credential = await self._credential()
        except CredentialUnavailable as e:
            raise SubmissionError(f"No credential for submission: {e}", is_permission_issue=True) from e

        try:
            submission = await self.submission.create(payload, options, credential)
        except EndpointError as e:
            logger.error(f"Submission failed: {e}")
            raise SubmissionError(
                f"Submission failed: {e}",
                is_permission_issue=self._is_permission(str(e), e.code, e.status_code),
            ) from e

        if submission is None or not getattr(submission, "job_id", None):
            raise SubmissionError("Submission response carried no job id")

        job = Job(id=submission.job_id)
        if submission.initial_status == JobStatus.RUNNING:
            job.mark_running()

        logger.info(f"Job submitted: {job.id} ({job.status.value})")
        return job

    async def await_completion(self, job: Job, config: Optional[PollConfig] = None) -> bytes:
        """
        Poll until the job finishes, then download its artifact.

        Suspends (asyncio.sleep) between polls so other tasks keep running.
        Cancelling the awaiting task abandons the job; nothing is sent to the
        remote side.

        Raises:
            JobTimeoutError: max_attempts polls without a terminal status
            RemoteJobError: the remote reported failure, or a poll failed fatally
            DownloadError: the artifact could not be fetched
        """
        if job.is_terminal:
            raise ValueError(f"Job {job.id} is already {job.status.value}")

        config = config or self.default_poll_config()

        while not job.is_terminal and job.attempts_made < config.max_attempts:
            await self._sleep(config.poll_interval_seconds)
            await self._poll_once(job, config)

        if not job.is_terminal:
            job.mark_timed_out()
            logger.error(f"Job {job.id} did not finish within {job.attempts_made} polls")
            raise JobTimeoutError(
                f"Job {job.id} did not complete within {job.attempts_made} polls",
                job_id=job.id,
                attempts=job.attempts_made,
            )

        return await self.download(job)

    async def _poll_once(self, job: Job, config: PollConfig):
        """One status check. Raises RemoteJobError when the job fails."""
        try:
            credential = await self._credential()
        except CredentialUnavailable as e:
            self._fail(job, ErrorDetail(message=str(e), code="NO_CREDENTIAL"), permission=True)

        try:
            report = await self.status.get(job.id, credential)
        except EndpointError as e:
            job.attempts_made += 1
            self._emit_progress(config, job.attempts_made)

            if self._is_permission(str(e), e.code, e.status_code):
                self._fail(
                    job,
                    ErrorDetail(message=str(e), code=e.code, status_code=e.status_code),
                    permission=True,
                )
            if e.is_transient:
                logger.warning(
                    f"Poll {job.attempts_made}/{config.max_attempts} for job {job.id} failed, will retry: {e}"
                )
                return
            self._fail(job, ErrorDetail(message=str(e), code=e.code, status_code=e.status_code))

        job.attempts_made += 1
        self._emit_progress(config, job.attempts_made)
        self._apply_report(job, report)

    def _apply_report(self, job: Job, report: StatusReport):
        if report.error_detail is not None or report.status in (JobStatus.FAILED, JobStatus.TIMED_OUT):
            detail = report.error_detail or ErrorDetail(
                message=f"Remote job ended as {report.status.value} without detail"
            )
            self._fail(
                job,
                detail,
                permission=self._is_permission(detail.message, detail.code, detail.status_code),
            )

        if report.status == JobStatus.SUCCEEDED:
            if not report.artifact_ref:
                self._fail(
                    job,
                    ErrorDetail(message="Remote reported success without an artifact", code="NO_ARTIFACT"),
                )
            job.mark_succeeded(report.artifact_ref)
            logger.info(f"Job {job.id} succeeded after {job.attempts_made} polls")
        elif report.status == JobStatus.RUNNING:
            job.mark_running()
        logger.debug(f"Job {job.id} poll {job.attempts_made}: {job.status.value}")

    def _fail(self, job: Job, detail: ErrorDetail, permission: bool = False):
        job.mark_failed(detail)
        logger.error(f"Job {job.id} failed: {detail}")
        raise RemoteJobError(detail, job_id=job.id, is_permission_issue=permission)

    async def download(self, job: Job) -> bytes:
        """
        Fetch the artifact of a succeeded job.

        Raises:
            DownloadError: non-successful response or network failure. Not retried.
        """
        if job.status != JobStatus.SUCCEEDED:
            raise ValueError(f"Job {job.id} has no artifact ({job.status.value})")

        try:
            credential = await self._credential()
        except CredentialUnavailable as e:
            raise DownloadError(
                f"No credential for artifact download: {e}",
                job_id=job.id,
                is_permission_issue=True,
            ) from e

        url = build_authenticated_url(
            job.artifact_ref, credential, self.config.api.credential_query_param
        )

        try:
            data = await self.artifacts.fetch(url)
        except EndpointError as e:
            reason = f"HTTP {e.status_code}" if e.status_code is not None else "network error"
            logger.error(f"Failed to download artifact from {redact_url(job.artifact_ref)}: {e}")
            raise DownloadError(
                f"Failed to fetch artifact for job {job.id}: {reason}: {e}",
                job_id=job.id,
                status_code=e.status_code,
                is_permission_issue=self._is_permission(str(e), e.code, e.status_code),
            ) from e

        logger.info(f"Artifact downloaded for job {job.id} ({len(data) / 1024 / 1024:.1f} MB)")
        return data

    async def run(
        self,
        payload: Any,
        options: Optional[SubmitOptions] = None,
        config: Optional[PollConfig] = None,
    ) -> bytes:
        """Submit and wait for the artifact."""
        job = await self.submit(payload, options)
        return await self.await_completion(job, config)
