"""
Database models for FrameRate.

This module defines SQLAlchemy models for the local copy of catalog movies
and for per-user interactions with them:
- Movie: canonical local copy of a TMDB movie, unique by tmdb_id
- Track: watched / favorite / watchlist state, keyed by (user_id, movie_id)
- Rate: star rating in [0, 5], keyed by (user_id, movie_id)
- Review: free-text review, keyed by (user_id, movie_id)

Users live in the identity service; user_id is an opaque verified integer.
"""

from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Movie(db.Model):
    """
    Local copy of a catalog movie.
    The id is assigned on first materialization and never reused.
    """
    __tablename__ = 'movies'

    id = db.Column(db.Integer, primary_key=True)
    tmdb_id = db.Column(db.Integer, nullable=False, unique=True)
    title = db.Column(db.String(255), nullable=False)
    original_title = db.Column(db.String(255), nullable=True)
    release_year = db.Column(db.Integer, nullable=False, default=0, index=True)
    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    synopsis = db.Column(db.Text, nullable=True)
    poster_url = db.Column(db.String(500), nullable=True)
    backdrop_url = db.Column(db.String(500), nullable=True)
    language = db.Column(db.String(10), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        """Convert the movie to a dictionary for JSON serialization."""
        return {
            'id': self.id,
            'tmdb_id': self.tmdb_id,
            'title': self.title,
            'original_title': self.original_title,
            'release_year': self.release_year,
            'duration_minutes': self.duration_minutes,
            'synopsis': self.synopsis,
            'poster_url': self.poster_url,
            'backdrop_url': self.backdrop_url,
            'language': self.language,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Movie {self.title} (tmdb={self.tmdb_id})>'


class Track(db.Model):
    __tablename__ = 'tracks'

    user_id = db.Column(db.Integer, primary_key=True)
    movie_id = db.Column(db.Integer, db.ForeignKey('movies.id'), primary_key=True)

    is_watched = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_favorite = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_watchlist = db.Column(db.Boolean, default=False, nullable=False, index=True)
    watched_date = db.Column(db.DateTime, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    movie = db.relationship('Movie')

    def __repr__(self):
        return f'<Track user={self.user_id} movie={self.movie_id} watched={self.is_watched}>'


class Rate(db.Model):
    __tablename__ = 'rates'

    user_id = db.Column(db.Integer, primary_key=True)
    movie_id = db.Column(db.Integer, db.ForeignKey('movies.id'), primary_key=True)
    rating = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint('rating >= 0 AND rating <= 5', name='ck_rates_rating_range'),
    )

    def __repr__(self):
        return f'<Rate user={self.user_id} movie={self.movie_id} rating={self.rating}>'


class Review(db.Model):
    __tablename__ = 'reviews'

    user_id = db.Column(db.Integer, primary_key=True)
    movie_id = db.Column(db.Integer, db.ForeignKey('movies.id'), primary_key=True)
    content = db.Column(db.Text, nullable=False)
    is_spoiler = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f'<Review user={self.user_id} movie={self.movie_id}>'
