"""
Async Job Client Services

- async_jobs: submit / poll / download client for remote generation jobs
"""

from .async_jobs import AsyncJobClient, run_batch

__all__ = [
    "AsyncJobClient",
    "run_batch",
]
