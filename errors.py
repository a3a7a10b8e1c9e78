"""
Error taxonomy shared by the sync pipeline, the store and the search engine.
"""
from typing import Optional


class IssueSyncError(Exception):
    """Base class for all errors raised by this project."""


class RateLimitExceeded(IssueSyncError):
    """The forge kept reporting an exhausted quota after the bounded number of attempts."""

    def __init__(self, attempts: int, url: str = '', reset_at: Optional[float] = None):
        self.attempts = attempts
        self.url = url
        self.reset_at = reset_at
        super().__init__(f"Rate limit still exceeded after {attempts} attempts: {url}")


class RemoteFetchError(IssueSyncError):
    """Non rate-limit failure talking to the forge. Fatal for the current sync run."""

    def __init__(self, message: str, status: int = 0, url: str = ''):
        self.status = status
        self.url = url
        super().__init__(f"{message} (status={status}, url={url})")


class TransientStorageError(IssueSyncError):
    """Store temporarily unavailable (locked database, I/O hiccup)."""


class EnrichmentFailure(IssueSyncError):
    """The text-generation collaborator failed for one issue."""


class InvalidQuery(IssueSyncError):
    """Client supplied a missing or blank search query."""


__all__ = [
    "IssueSyncError",
    "RateLimitExceeded",
    "RemoteFetchError",
    "TransientStorageError",
    "EnrichmentFailure",
    "InvalidQuery",
]
