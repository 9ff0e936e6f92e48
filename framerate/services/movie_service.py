"""
Movie synchronization and interaction service.

MovieService guarantees a local Movie row exists for a TMDB id before any
interaction is written against it, materializing the movie from the catalog
on first reference. All writes go through upsert-on-conflict statements in
MovieRepository; the service holds no locks, so two requests that both find
a movie absent both upsert and converge on the same row.
"""

import math
import os
from datetime import timezone
from typing import Any, Dict, Optional

from framerate.api_client import APIError
from framerate.errors import InteractionValidationError, MovieSyncError
from framerate.logging_config import get_logger
from framerate.metrics import track_interaction_write, track_materialization
from framerate.models import Movie, utcnow
from framerate.repository import MovieRepository
from framerate.schemas import (
    MovieSummary,
    RateMovieRequest,
    ReviewRequest,
    ReviewSnapshot,
    TMDBMovieDetails,
    TrackMovieRequest,
    UserInteraction,
    UserMovieStats,
)
from framerate.services.tmdb_service import TMDBService

logger = get_logger(__name__)

SYNC_LANGUAGE = os.getenv("MOVIE_SYNC_LANGUAGE", "fr-FR")

MIN_RATING = 0.0
MAX_RATING = 5.0

PROFILE_LIST_LIMIT = 4


def parse_release_year(release_date: Optional[str]) -> int:
    """
    Year from a TMDB release date ("2010-07-15" -> 2010).

    Anything that does not start with four digits yields 0.
    """
    if not release_date or len(release_date) < 4:
        return 0
    head = release_date[:4]
    if not head.isdigit():
        return 0
    return int(head)


def movie_fields_from_tmdb(details: TMDBMovieDetails) -> Dict[str, Any]:
    """Map a catalog detail payload onto Movie columns."""
    return {
        "tmdb_id": details.id,
        "title": details.title,
        "original_title": details.original_title,
        "release_year": parse_release_year(details.release_date),
        "duration_minutes": details.runtime or 0,
        "synopsis": details.overview or "",
        "poster_url": details.poster_path or "",
        "backdrop_url": details.backdrop_path or "",
        "language": details.original_language,
    }


def validate_rating(rating: float) -> None:
    """
    Ratings are stars in [0, 5] by half-star steps.

    Raises:
        InteractionValidationError: rating out of range or not a 0.5 step
    """
    if rating is None or isinstance(rating, bool) or not isinstance(rating, (int, float)):
        raise InteractionValidationError("Rating must be a number", field="rating")
    if math.isnan(rating) or rating < MIN_RATING or rating > MAX_RATING:
        raise InteractionValidationError(
            f"Rating must be between {MIN_RATING:g} and {MAX_RATING:g}", field="rating"
        )
    if not float(rating * 2).is_integer():
        raise InteractionValidationError("Rating must be in increments of 0.5", field="rating")


def _to_naive_utc(value):
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class MovieService:
    """Materializes catalog movies and records user interactions against them."""

    def __init__(
        self,
        repository: MovieRepository,
        tmdb_service: TMDBService,
        sync_language: Optional[str] = None,
    ):
        self.repository = repository
        self.tmdb = tmdb_service
        self.sync_language = sync_language or SYNC_LANGUAGE

    # ------------------------------------------------------------------
    # materialization
    # ------------------------------------------------------------------

    def ensure_movie_exists(self, tmdb_id: int) -> Movie:
        """
        Return the local movie for ``tmdb_id``, materializing it if absent.

        A present movie is returned without any network call or write.

        Raises:
            MovieSyncError: The catalog lookup failed; nothing was written
            PersistenceError: The store failed
        """
        movie = self.repository.get_movie_by_tmdb_id(tmdb_id)
        if movie is not None:
            return movie
        return self._sync(tmdb_id, self.sync_language)

    def refresh_movie(self, tmdb_id: int, language: Optional[str] = None) -> Movie:
        """
        Fetch the movie from the catalog and overwrite its descriptive fields.
        The local id of an existing movie is kept.
        """
        return self._sync(tmdb_id, language or self.sync_language)

    def _sync(self, tmdb_id: int, language: str) -> Movie:
        try:
            details = self.tmdb.get_movie_details(tmdb_id, language)
        except APIError as e:
            track_materialization(success=False)
            logger.warning(
                "movie_sync_failed",
                tmdb_id=tmdb_id,
                error=e.message,
                error_type=e.error_type.value,
            )
            raise MovieSyncError(tmdb_id, e) from e

        self.repository.upsert_movie(movie_fields_from_tmdb(details))

        # The conflict path of the upsert does not report the existing id
        movie = self.repository.get_movie_by_tmdb_id(tmdb_id)
        if movie is None:
            track_materialization(success=False)
            raise MovieSyncError(tmdb_id, LookupError("movie missing after upsert"))

        track_materialization(success=True)
        logger.info("movie_materialized", tmdb_id=tmdb_id, movie_id=movie.id, title=movie.title)
        return movie

    # ------------------------------------------------------------------
    # interactions
    # ------------------------------------------------------------------

    def track_movie(self, user_id: int, tmdb_id: int, request: TrackMovieRequest) -> None:
        """Apply a partial watch-state update; unsupplied fields keep their value."""
        movie = self.ensure_movie_exists(tmdb_id)

        changes = request.supplied_fields()
        if "watched_date" in changes:
            changes["watched_date"] = _to_naive_utc(changes["watched_date"])

        self._write_interaction(
            "track", self.repository.upsert_track, user_id, movie.id, changes
        )
        logger.info("movie_tracked", user_id=user_id, tmdb_id=tmdb_id, fields=sorted(changes))

    def rate_movie(self, user_id: int, tmdb_id: int, request: RateMovieRequest) -> None:
        """
        Rate a movie and mark it watched now.

        The rating is validated before anything is fetched or written.
        Favorite and watchlist flags are left untouched.
        """
        validate_rating(request.rating)
        movie = self.ensure_movie_exists(tmdb_id)

        self._write_interaction(
            "rate", self.repository.upsert_rate, user_id, movie.id, float(request.rating)
        )
        self._write_interaction(
            "track",
            self.repository.upsert_track,
            user_id,
            movie.id,
            {"is_watched": True, "watched_date": utcnow()},
        )
        logger.info("movie_rated", user_id=user_id, tmdb_id=tmdb_id, rating=request.rating)

    def review_movie(self, user_id: int, tmdb_id: int, request: ReviewRequest) -> None:
        movie = self.ensure_movie_exists(tmdb_id)
        self._write_interaction(
            "review",
            self.repository.upsert_review,
            user_id,
            movie.id,
            request.content,
            request.is_spoiler,
        )
        logger.info("movie_reviewed", user_id=user_id, tmdb_id=tmdb_id, is_spoiler=request.is_spoiler)

    def _write_interaction(self, kind: str, write, *args) -> None:
        try:
            write(*args)
        except Exception:
            track_interaction_write(kind, success=False)
            raise
        track_interaction_write(kind, success=True)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_movie_interaction(self, user_id: int, tmdb_id: int) -> UserInteraction:
        """
        Snapshot of a user's interaction with a movie.

        Never materializes: an unknown movie yields the all-defaults snapshot
        without touching the catalog.
        """
        movie = self.repository.get_movie_by_tmdb_id(tmdb_id)
        if movie is None:
            return UserInteraction()

        track, rate, review = self.repository.get_user_interaction(user_id, movie.id)
        interaction = UserInteraction()

        if track is not None:
            interaction.is_watched = track.is_watched
            interaction.is_favorite = track.is_favorite
            interaction.is_watchlist = track.is_watchlist
            interaction.watched_date = track.watched_date

        if rate is not None:
            interaction.user_rating = rate.rating

        if review is not None and review.content:
            interaction.user_review = ReviewSnapshot(
                content=review.content,
                is_spoiler=review.is_spoiler,
                created_at=review.created_at,
            )

        return interaction

    def get_user_stats(self, user_id: int) -> UserMovieStats:
        """Library statistics for a user's profile."""
        return UserMovieStats(
            watched_count=self.repository.count_watched(user_id),
            watched_this_year_count=self.repository.count_watched_this_year(user_id),
            reviews_count=self.repository.count_reviews(user_id),
            rating_distribution=self.repository.get_rating_distribution(user_id),
            recent_watched=[
                MovieSummary.model_validate(movie)
                for movie in self.repository.get_recent_watched(user_id, PROFILE_LIST_LIMIT)
            ],
            favorite_movies=[
                MovieSummary.model_validate(movie)
                for movie in self.repository.get_favorite_movies(user_id, PROFILE_LIST_LIMIT)
            ],
        )
