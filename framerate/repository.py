"""
Interaction repository: persistence of movies and per-user interactions.

Every write is a single "INSERT ... ON CONFLICT DO UPDATE" statement keyed by
the natural key (movies.tmdb_id) or the composite key (user_id, movie_id),
committed on its own. There is no check-then-insert path, so concurrent
writers converge on one row instead of failing on the unique constraint.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from framerate.errors import PersistenceError
from framerate.logging_config import get_logger
from framerate.models import db, Movie, Track, Rate, Review, utcnow

logger = get_logger(__name__)

# Descriptive columns overwritten when a movie is synced again
MOVIE_SYNC_COLUMNS = (
    "title",
    "original_title",
    "release_year",
    "duration_minutes",
    "synopsis",
    "poster_url",
    "backdrop_url",
    "language",
)

TRACK_COLUMNS = ("is_watched", "is_favorite", "is_watchlist", "watched_date")

INTERACTION_KEY = ("user_id", "movie_id")


class MovieRepository:
    """Reads and upserts for Movie, Track, Rate and Review."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ------------------------------------------------------------------
    # statement helpers
    # ------------------------------------------------------------------

    def _upsert(self, table, values: Dict[str, Any], conflict_columns, update_values: Dict[str, Any]):
        """
        Build an insert-or-update statement for the bound dialect.

        Args:
            table: Target table
            values: Column values for the inserted row
            conflict_columns: Unique key that triggers the update branch
            update_values: Columns overwritten on conflict
        """
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            stmt = pg_insert(table).values(**values)
            return stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=update_values)
        if dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values)
            return stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=update_values)
        if dialect in ("mysql", "mariadb"):
            # MySQL resolves the conflict against every unique key of the table
            stmt = mysql_insert(table).values(**values)
            return stmt.on_duplicate_key_update(**update_values)

        raise PersistenceError(f"Upsert is not supported for dialect '{dialect}'")

    def _write(self, stmt, operation: str, **log_fields) -> None:
        try:
            self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("repository_write_failed", operation=operation, error=str(e), **log_fields)
            raise PersistenceError(f"{operation} failed: {e}", e) from e

    def _read(self, stmt, operation: str):
        try:
            return self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("repository_read_failed", operation=operation, error=str(e))
            raise PersistenceError(f"{operation} failed: {e}", e) from e

    # ------------------------------------------------------------------
    # movies
    # ------------------------------------------------------------------

    def get_movie_by_tmdb_id(self, tmdb_id: int) -> Optional[Movie]:
        """Return the local movie for a catalog id, or None when absent."""
        result = self._read(
            select(Movie).where(Movie.tmdb_id == tmdb_id),
            "get_movie_by_tmdb_id",
        )
        return result.scalar_one_or_none()

    def upsert_movie(self, fields: Dict[str, Any]) -> None:
        """
        Insert a movie, or overwrite its descriptive columns when tmdb_id exists.

        Args:
            fields: tmdb_id plus any of MOVIE_SYNC_COLUMNS
        """
        now = utcnow()
        values = {"tmdb_id": fields["tmdb_id"], "created_at": now, "updated_at": now}
        values.update({col: fields[col] for col in MOVIE_SYNC_COLUMNS if col in fields})
        update_values = {col: values[col] for col in MOVIE_SYNC_COLUMNS if col in values}
        update_values["updated_at"] = now

        stmt = self._upsert(Movie.__table__, values, ("tmdb_id",), update_values)
        self._write(stmt, "upsert_movie", tmdb_id=fields["tmdb_id"])

    # ------------------------------------------------------------------
    # interactions
    # ------------------------------------------------------------------

    def upsert_track(self, user_id: int, movie_id: int, changes: Dict[str, Any]) -> None:
        """
        Insert a track row, or overwrite only the supplied columns.

        Columns missing from ``changes`` take their defaults on insert and
        keep their stored value on update.
        """
        unknown = set(changes) - set(TRACK_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown track columns: {sorted(unknown)}")

        now = utcnow()
        values = {
            "user_id": user_id,
            "movie_id": movie_id,
            "is_watched": False,
            "is_favorite": False,
            "is_watchlist": False,
            "watched_date": None,
            "created_at": now,
            "updated_at": now,
        }
        values.update(changes)
        update_values = dict(changes)
        update_values["updated_at"] = now

        stmt = self._upsert(Track.__table__, values, INTERACTION_KEY, update_values)
        self._write(stmt, "upsert_track", user_id=user_id, movie_id=movie_id)

    def upsert_rate(self, user_id: int, movie_id: int, rating: float) -> None:
        now = utcnow()
        values = {
            "user_id": user_id,
            "movie_id": movie_id,
            "rating": rating,
            "created_at": now,
            "updated_at": now,
        }
        stmt = self._upsert(
            Rate.__table__, values, INTERACTION_KEY, {"rating": rating, "updated_at": now}
        )
        self._write(stmt, "upsert_rate", user_id=user_id, movie_id=movie_id)

    def upsert_review(self, user_id: int, movie_id: int, content: str, is_spoiler: bool) -> None:
        now = utcnow()
        values = {
            "user_id": user_id,
            "movie_id": movie_id,
            "content": content,
            "is_spoiler": is_spoiler,
            "created_at": now,
            "updated_at": now,
        }
        stmt = self._upsert(
            Review.__table__,
            values,
            INTERACTION_KEY,
            {"content": content, "is_spoiler": is_spoiler, "updated_at": now},
        )
        self._write(stmt, "upsert_review", user_id=user_id, movie_id=movie_id)

    def get_user_interaction(
        self, user_id: int, movie_id: int
    ) -> Tuple[Optional[Track], Optional[Rate], Optional[Review]]:
        """Return (track, rate, review) for the pair; absent rows are None."""
        track = self._read(
            select(Track).where(Track.user_id == user_id, Track.movie_id == movie_id),
            "get_track",
        ).scalar_one_or_none()
        rate = self._read(
            select(Rate).where(Rate.user_id == user_id, Rate.movie_id == movie_id),
            "get_rate",
        ).scalar_one_or_none()
        review = self._read(
            select(Review).where(Review.user_id == user_id, Review.movie_id == movie_id),
            "get_review",
        ).scalar_one_or_none()
        return track, rate, review

    # ------------------------------------------------------------------
    # library statistics
    # ------------------------------------------------------------------

    def count_watched(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(Track).where(
            Track.user_id == user_id, Track.is_watched.is_(True)
        )
        return self._read(stmt, "count_watched").scalar_one()

    def count_watched_this_year(self, user_id: int, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        start_of_year = datetime(now.year, 1, 1)
        stmt = select(func.count()).select_from(Track).where(
            Track.user_id == user_id,
            Track.is_watched.is_(True),
            Track.watched_date >= start_of_year,
        )
        return self._read(stmt, "count_watched_this_year").scalar_one()

    def count_reviews(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(Review).where(Review.user_id == user_id)
        return self._read(stmt, "count_reviews").scalar_one()

    def get_rating_distribution(self, user_id: int) -> Dict[str, int]:
        """Map of rating (formatted "4.5") to number of movies rated so."""
        stmt = (
            select(Rate.rating, func.count())
            .where(Rate.user_id == user_id)
            .group_by(Rate.rating)
        )
        rows = self._read(stmt, "get_rating_distribution").all()
        return {f"{rating:.1f}": count for rating, count in rows}

    def get_favorite_movies(self, user_id: int, limit: int) -> List[Movie]:
        stmt = (
            select(Movie)
            .join(Track, Track.movie_id == Movie.id)
            .where(Track.user_id == user_id, Track.is_favorite.is_(True))
            .order_by(Track.updated_at.desc())
            .limit(limit)
        )
        return list(self._read(stmt, "get_favorite_movies").scalars())

    def get_recent_watched(self, user_id: int, limit: int) -> List[Movie]:
        stmt = (
            select(Movie)
            .join(Track, Track.movie_id == Movie.id)
            .where(Track.user_id == user_id, Track.is_watched.is_(True))
            .order_by(Track.watched_date.desc())
            .limit(limit)
        )
        return list(self._read(stmt, "get_recent_watched").scalars())
