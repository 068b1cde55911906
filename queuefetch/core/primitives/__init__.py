"""
Primitives: atomic building blocks for queued fetching.

The fetcher performs one HTTP call per task.
The dispatcher drains a task queue with a pool of fetching workers.
"""

from queuefetch.core.primitives.dispatcher import (
    Dispatcher,
    DispatcherConfig,
    DispatchStats,
)
from queuefetch.core.primitives.fetcher import (
    Fetcher,
    FetcherConfig,
    FetchResponse,
    FetchTask,
    HttpMethod,
    fetch,
)

__all__ = [
    "Dispatcher",
    "DispatcherConfig",
    "DispatchStats",
    "Fetcher",
    "FetcherConfig",
    "FetchResponse",
    "FetchTask",
    "HttpMethod",
    "fetch",
]
