"""
HTTP endpoints for a long-running-operation REST API.

Implements the three collaborators the job client talks to:
- create: POST {api_base}/models/{model}:predictLongRunning
- get:    GET  {api_base}/{operation name}
- fetch:  GET  <artifact uri>?key=...

Failures surface as EndpointError; classification (transient, fatal,
permission) happens in the client.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from core.config import Config, get_config

from .errors import EndpointError
from .models import ErrorDetail, JobStatus, StatusReport, SubmitOptions, Submission

logger = logging.getLogger(__name__)


class QueryCredentialFilter(logging.Filter):
    """Masks `<param>=<value>` in records, e.g. httpx's per-request URL lines."""

    def __init__(self, param: str = "key"):
        super().__init__()
        self.param = param
        self._pattern = re.compile(rf"([?&]{re.escape(param)}=)[^&#\s\"']+")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self._pattern.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def install_credential_filter(param: str = "key", logger_name: str = "httpx"):
    """Attach a QueryCredentialFilter for `param` to `logger_name` once."""
    target = logging.getLogger(logger_name)
    for existing in target.filters:
        if isinstance(existing, QueryCredentialFilter) and existing.param == param:
            return existing
    credential_filter = QueryCredentialFilter(param)
    target.addFilter(credential_filter)
    return credential_filter


# ============================================================
# Collaborator interfaces
# ============================================================

class SubmissionEndpoint(Protocol):
    async def create(self, payload: Any, options: SubmitOptions, credential: str) -> Submission:
        ...


class StatusEndpoint(Protocol):
    async def get(self, job_id: str, credential: str) -> StatusReport:
        ...


class ArtifactEndpoint(Protocol):
    async def fetch(self, authenticated_url: str) -> bytes:
        ...


# ============================================================
# Payload
# ============================================================

@dataclass
class VideoPrompt:
    """Text prompt with an optional seed image (image-to-video)."""
    prompt: str
    negative_prompt: Optional[str] = None
    image: Optional[bytes] = None
    image_mime_type: str = "image/png"

    @classmethod
    def from_data_url(cls, prompt: str, data_url: Optional[str], **kwargs) -> "VideoPrompt":
        """Build from a `data:<mime>;base64,<data>` image URL, as produced by image generation."""
        if not data_url:
            return cls(prompt=prompt, **kwargs)
        header, _, encoded = data_url.partition(",")
        if not header.startswith("data:") or ";base64" not in header or not encoded:
            raise ValueError("Seed image must be a base64 data URL")
        mime_type = header[len("data:"):].split(";", 1)[0] or "image/png"
        return cls(prompt=prompt, image=base64.b64decode(encoded), image_mime_type=mime_type, **kwargs)

    def to_instance(self) -> dict:
        instance: dict[str, Any] = {"prompt": self.prompt}
        if self.image:
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(self.image).decode("ascii"),
                "mimeType": self.image_mime_type,
            }
        return instance


# ============================================================
# Wire models
# ============================================================

# google.rpc.Code values carried by an operation's `error.code`
GRPC_CODE_NAMES = {
    1: "CANCELLED",
    2: "UNKNOWN",
    3: "INVALID_ARGUMENT",
    4: "DEADLINE_EXCEEDED",
    5: "NOT_FOUND",
    6: "ALREADY_EXISTS",
    7: "PERMISSION_DENIED",
    8: "RESOURCE_EXHAUSTED",
    9: "FAILED_PRECONDITION",
    10: "ABORTED",
    11: "OUT_OF_RANGE",
    12: "UNIMPLEMENTED",
    13: "INTERNAL",
    14: "UNAVAILABLE",
    15: "DATA_LOSS",
    16: "UNAUTHENTICATED",
}


class OperationError(BaseModel):
    """google.rpc.Status: `code` is a gRPC code, not an HTTP status."""
    code: Optional[int] = None
    message: str = ""
    status: Optional[str] = None

    def to_detail(self) -> ErrorDetail:
        code = self.status
        if not code and self.code is not None:
            code = GRPC_CODE_NAMES.get(self.code, str(self.code))
        return ErrorDetail(
            message=self.message or "Remote job failed without a message",
            code=code,
        )


class ErrorEnvelope(BaseModel):
    """HTTP error body; here `error.code` is the HTTP status."""
    error: OperationError


class VideoRef(BaseModel):
    uri: Optional[str] = None


class GeneratedSample(BaseModel):
    video: Optional[VideoRef] = None


class GenerateVideoResponse(BaseModel):
    generated_samples: list[GeneratedSample] = Field(default_factory=list, alias="generatedSamples")


class OperationResponse(BaseModel):
    generate_video_response: Optional[GenerateVideoResponse] = Field(
        default=None, alias="generateVideoResponse"
    )


class Operation(BaseModel):
    """A long-running operation as returned by create and get."""
    name: str
    done: bool = False
    error: Optional[OperationError] = None
    response: Optional[OperationResponse] = None

    def first_video_uri(self) -> Optional[str]:
        if not self.response or not self.response.generate_video_response:
            return None
        for sample in self.response.generate_video_response.generated_samples:
            if sample.video and sample.video.uri:
                return sample.video.uri
        return None

    def to_status_report(self) -> StatusReport:
        if self.error is not None:
            return StatusReport(status=JobStatus.FAILED, error_detail=self.error.to_detail())
        if not self.done:
            return StatusReport(status=JobStatus.RUNNING)
        # done without a uri is left for the client to reject
        return StatusReport(status=JobStatus.SUCCEEDED, artifact_ref=self.first_video_uri())


# ============================================================
# HTTP implementation
# ============================================================

class HttpOperationsEndpoints:
    """
    Submission, status and artifact endpoints over one shared httpx client.

    Usage:
        endpoints = HttpOperationsEndpoints()
        submission = await endpoints.create(VideoPrompt("A lighthouse at dusk"), SubmitOptions(), key)
        report = await endpoints.get(submission.job_id, key)
        await endpoints.close()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self._http_client = http_client
        self._owns_client = http_client is None
        install_credential_filter(self.config.api.credential_query_param)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.http.request_timeout)
        return self._http_client

    async def close(self):
        """Close the HTTP client if we created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _send(self, method: str, url: str, what: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise EndpointError(f"{what} timed out: {type(e).__name__}", timeout=True) from e
        except httpx.RequestError as e:
            # str(e) can echo the request URL, which may carry the key
            raise EndpointError(f"{what} request failed: {type(e).__name__}") from e

        if not response.is_success:
            raise self._error_from_response(response, what)
        return response

    @staticmethod
    def _error_from_response(response: httpx.Response, what: str) -> EndpointError:
        code = None
        message = response.reason_phrase or "Unknown error"
        try:
            envelope = ErrorEnvelope.model_validate(response.json())
            code = envelope.error.status
            message = envelope.error.message or message
        except (ValueError, ValidationError):
            pass
        return EndpointError(
            f"{what} failed: HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            code=code,
        )

    @staticmethod
    def _parse_operation(response: httpx.Response, what: str) -> Operation:
        try:
            return Operation.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise EndpointError(
                f"{what} returned a malformed operation: {type(e).__name__}",
                status_code=response.status_code,
                code="MALFORMED_RESPONSE",
            ) from e

    async def create(
        self,
        payload: Union[VideoPrompt, str],
        options: SubmitOptions,
        credential: str,
    ) -> Submission:
        if isinstance(payload, str):
            payload = VideoPrompt(prompt=payload)

        model = options.model or self.config.api.model
        parameters: dict[str, Any] = {
            "aspectRatio": options.resolved_aspect_ratio(),
            "resolution": options.resolved_resolution(),
            "sampleCount": options.resolved_sample_count(),
        }
        if payload.negative_prompt:
            parameters["negativePrompt"] = payload.negative_prompt

        body = {"instances": [payload.to_instance()], "parameters": parameters}

        logger.info(f"Submitting job: model={model}, prompt={payload.prompt[:50]}...")

        response = await self._send(
            "POST",
            f"{self.config.api.api_base}/models/{model}:predictLongRunning",
            "Submission",
            json=body,
            headers={"x-goog-api-key": credential},
        )
        operation = self._parse_operation(response, "Submission")

        if operation.error is not None:
            detail = operation.error.to_detail()
            raise EndpointError(
                f"Submission rejected: {detail}",
                status_code=detail.status_code,
                code=detail.code,
            )

        # A job already done at submission is picked up by the first poll
        return Submission(
            job_id=operation.name,
            initial_status=JobStatus.RUNNING if operation.done else JobStatus.SUBMITTED,
        )

    async def get(self, job_id: str, credential: str) -> StatusReport:
        response = await self._send(
            "GET",
            f"{self.config.api.api_base}/{job_id}",
            "Status check",
            headers={"x-goog-api-key": credential},
        )
        return self._parse_operation(response, "Status check").to_status_report()

    async def fetch(self, authenticated_url: str) -> bytes:
        response = await self._send(
            "GET",
            authenticated_url,
            "Artifact download",
            follow_redirects=True,
            timeout=self.config.http.download_timeout,
        )
        return response.content
