"""
Error taxonomy for the async job client.

Terminal errors (one per failure mode) all derive from AsyncJobError and
carry `is_permission_issue`, which tells the caller to refresh or re-select
its credential before trying again. EndpointError is what collaborators
raise for a single failed call; the client decides whether it is terminal.
"""

from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .models import ErrorDetail


PERMISSION_STATUS_CODES = frozenset({401, 403, 404})
PERMISSION_ERROR_CODES = frozenset({"NOT_FOUND", "PERMISSION_DENIED", "UNAUTHENTICATED"})


def is_permission_issue(
    message: Optional[str],
    code: Optional[str] = None,
    status_code: Optional[int] = None,
    signatures: Iterable[str] = (),
) -> bool:
    """
    Classify a failure as a permission/not-found problem.

    Structured fields win; the substring match over `signatures` is only a
    fallback for errors that arrive as bare English text.
    """
    if status_code in PERMISSION_STATUS_CODES:
        return True
    if code and str(code).upper() in PERMISSION_ERROR_CODES | {str(c) for c in PERMISSION_STATUS_CODES}:
        return True
    if not message:
        return False
    lowered = message.lower()
    return any(sig and sig.lower() in lowered for sig in signatures)


class InvalidTransition(ValueError):
    """Raised when a job would leave a terminal state."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id}: cannot transition from {current} to {requested}")


class EndpointError(Exception):
    """A single remote call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        timeout: bool = False,
    ):
        self.status_code = status_code
        self.code = code
        self.timeout = timeout
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Network failures, timeouts, rate limiting and 5xx are worth another poll."""
        if self.timeout or self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class AsyncJobError(Exception):
    """Base class for terminal job failures."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        is_permission_issue: bool = False,
    ):
        self.job_id = job_id
        self.is_permission_issue = is_permission_issue
        super().__init__(message)


class SubmissionError(AsyncJobError):
    """The job could not be created. Never retried: a retry may duplicate the remote job."""


class JobTimeoutError(AsyncJobError, TimeoutError):
    """The attempt budget ran out while the job was still in progress."""

    def __init__(self, message: str, job_id: Optional[str] = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message, job_id=job_id)


class RemoteJobError(AsyncJobError):
    """The remote side reported the job failed, or a poll failed fatally."""

    def __init__(
        self,
        detail: "ErrorDetail",
        job_id: Optional[str] = None,
        is_permission_issue: bool = False,
    ):
        self.detail = detail
        super().__init__(
            f"Job {job_id} failed: {detail}" if job_id else f"Job failed: {detail}",
            job_id=job_id,
            is_permission_issue=is_permission_issue,
        )


class DownloadError(AsyncJobError):
    """The artifact of a succeeded job could not be fetched."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        status_code: Optional[int] = None,
        is_permission_issue: bool = False,
    ):
        self.status_code = status_code
        super().__init__(message, job_id=job_id, is_permission_issue=is_permission_issue)
