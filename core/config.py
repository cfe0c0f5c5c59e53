"""
Configuration management for the async job client.

Centralizes all configuration including:
- API endpoint and model selection
- Polling cadence and attempt budget
- Per-call HTTP timeouts
- Error signatures that mark a failure as a permission problem

Credential *values* are deliberately absent: only the names of the
environment variables that hold them live here. The value is looked up
through a credential provider immediately before each remote call.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_PERMISSION_SIGNATURES = (
    "Requested entity was not found",
    "404",
    "PERMISSION_DENIED",
    "permission denied",
    "API key not valid",
)


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class APIConfig:
    """Remote generation API configuration."""

    api_base: str = field(
        default_factory=lambda: os.getenv(
            "ASYNC_JOB_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
        )
    )
    model: str = field(
        default_factory=lambda: os.getenv("ASYNC_JOB_MODEL", "veo-3.1-fast-generate-preview")
    )

    # Checked in order on every lookup
    credential_env_vars: list[str] = field(default_factory=lambda: ["API_KEY", "GEMINI_API_KEY"])

    # Query parameter used to authenticate artifact downloads
    credential_query_param: str = "key"


@dataclass
class PollingConfig:
    """Poll loop defaults (10s x 120 = 20 minutes)."""
    poll_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("ASYNC_JOB_POLL_INTERVAL", "10"))
    )
    max_attempts: int = field(
        default_factory=lambda: int(os.getenv("ASYNC_JOB_MAX_ATTEMPTS", "120"))
    )


@dataclass
class HTTPConfig:
    """Per-call network timeouts in seconds."""
    request_timeout: float = 60.0
    download_timeout: float = 300.0  # Video artifacts can be tens of MB


@dataclass
class ErrorPolicyConfig:
    """Signatures that classify an error message as a permission/not-found failure."""

    permission_signatures: list[str] = field(
        default_factory=lambda: list(DEFAULT_PERMISSION_SIGNATURES)
        + _env_list("ASYNC_JOB_PERMISSION_SIGNATURES")
    )


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    errors: ErrorPolicyConfig = field(default_factory=ErrorPolicyConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not any(os.getenv(name) for name in self.api.credential_env_vars):
            names = " or ".join(self.api.credential_env_vars)
            issues.append(f"No API key configured ({names} required)")

        if not self.api.api_base:
            issues.append("ASYNC_JOB_API_BASE is empty")

        if self.polling.poll_interval_seconds < 0:
            issues.append("Poll interval must not be negative")

        if self.polling.max_attempts < 1:
            issues.append("Max attempts must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
