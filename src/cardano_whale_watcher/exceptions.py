"""
Error types raised by the watcher and mapped to HTTP status codes by the server.
"""

from typing import Any, Optional


class WhaleWatcherError(Exception):
    """Base class for all watcher errors."""
    status_code = 500


class ValidationError(WhaleWatcherError):
    """Malformed address or handle, or empty input."""
    status_code = 400


class ConflictError(WhaleWatcherError):
    """The wallet is already being tracked."""
    status_code = 409

    def __init__(self, message: str, existing: Optional[Any] = None):
        super().__init__(message)
        self.existing = existing


class NotFoundError(WhaleWatcherError):
    """The address is not tracked."""
    status_code = 404


class UpstreamError(WhaleWatcherError):
    """A chain, price or handle service call failed."""
    status_code = 500


class ConfigError(WhaleWatcherError):
    """Required configuration is missing."""
