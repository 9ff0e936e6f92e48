"""
FrameRate - movie metadata sync and interaction tracking

Keeps a local copy of TMDB movies, materialized on first reference, and
records each user's watch state, ratings and reviews against them.
"""

__version__ = "1.0.0"

from .api_client import (
    CatalogHTTPClient,
    APIError,
    AuthError,
    QuotaError,
    NotFoundError,
    TransientError,
    DecodeError,
    APIErrorType
)
from .errors import (
    FrameRateError,
    InteractionValidationError,
    MovieSyncError,
    PersistenceError,
)

__all__ = [
    "CatalogHTTPClient",
    "APIError",
    "AuthError",
    "QuotaError",
    "NotFoundError",
    "TransientError",
    "DecodeError",
    "APIErrorType",
    "FrameRateError",
    "InteractionValidationError",
    "MovieSyncError",
    "PersistenceError",
]
