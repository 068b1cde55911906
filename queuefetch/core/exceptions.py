"""
Queuefetch exceptions.

All components raise these exceptions for consistent error handling.
"""


class QueueFetchError(Exception):
    """Base exception for all queuefetch errors."""

    pass


class ConfigurationError(QueueFetchError):
    """Invalid dispatcher or fetcher configuration."""

    pass


class InvalidTaskError(QueueFetchError):
    """Task cannot be turned into an HTTP request."""

    pass


class FetchError(QueueFetchError):
    """Transport or HTTP error while fetching a task."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.message = message
        self.status_code = status_code
