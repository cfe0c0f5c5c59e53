"""
Credential providers.

A provider hands out the access token that authorizes the next remote
call. Callers may rotate the token at any time (for example after the user
re-selects an API key following a permission failure), so providers are
asked again before every call and nothing here caches a value.
"""

import os
from typing import Awaitable, Callable, Optional, Protocol, Union

from .config import get_config


class CredentialUnavailable(Exception):
    """Raised when no credential can be produced."""


class CredentialProvider(Protocol):
    """Anything with a `current()` returning the active token (or an awaitable of it)."""

    def current(self) -> Union[str, Awaitable[str]]:
        ...


class EnvCredentialProvider:
    """
    Reads the token from the environment on every call.

    Usage:
        provider = EnvCredentialProvider()             # API_KEY, then GEMINI_API_KEY
        provider = EnvCredentialProvider(["MY_KEY"])
    """

    def __init__(self, env_vars: Optional[list[str]] = None):
        self.env_vars = list(env_vars or get_config().api.credential_env_vars)

    def current(self) -> str:
        for name in self.env_vars:
            value = os.environ.get(name)
            if value:
                return value
        raise CredentialUnavailable(
            f"No credential found in environment ({', '.join(self.env_vars)})"
        )


class StaticCredentialProvider:
    """Fixed token, mostly for tests and one-off scripts."""

    def __init__(self, token: str):
        if not token:
            raise CredentialUnavailable("Empty credential")
        self._token = token

    def current(self) -> str:
        return self._token


class CallableCredentialProvider:
    """Wraps a sync or async zero-argument function returning the token."""

    def __init__(self, func: Callable[[], Union[str, Awaitable[str]]]):
        self._func = func

    def current(self) -> Union[str, Awaitable[str]]:
        return self._func()
