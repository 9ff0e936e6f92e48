"""
Errors raised by the FrameRate core to the surrounding request layer.

- InteractionValidationError: bad caller input, maps to a client error
- MovieSyncError: the catalog could not provide a movie; retryable
- PersistenceError: the relational store rejected or failed a write/read

Catalog transport errors (framerate.api_client.APIError) are wrapped in
MovieSyncError when they interrupt materialization.
"""

from typing import Optional


class FrameRateError(Exception):
    """Base exception for the FrameRate core."""

    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InteractionValidationError(FrameRateError):
    """Caller input is invalid; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class MovieSyncError(FrameRateError):
    """The catalog could not provide metadata for a movie; nothing was written."""

    retryable = True

    def __init__(self, tmdb_id: int, original_error: Exception):
        self.tmdb_id = tmdb_id
        self.original_error = original_error
        super().__init__(f"Failed to sync movie {tmdb_id} from catalog: {original_error}")


class PersistenceError(FrameRateError):
    """The relational store failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)
