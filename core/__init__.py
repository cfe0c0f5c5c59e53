"""
Async job client core components

Provides foundational infrastructure shared by the job client:
- Environment-driven configuration
- Credential providers that are re-read before every remote call
"""

from .config import Config, get_config, reload_config
from .credentials import (
    CallableCredentialProvider,
    CredentialProvider,
    CredentialUnavailable,
    EnvCredentialProvider,
    StaticCredentialProvider,
)

__all__ = [
    "Config",
    "get_config",
    "reload_config",
    "CredentialProvider",
    "CredentialUnavailable",
    "EnvCredentialProvider",
    "StaticCredentialProvider",
    "CallableCredentialProvider",
]
