"""
Data schemas for FrameRate.

This module defines Pydantic models for:
- TMDB catalog payloads (decoded responses, also the cached representation)
- Interaction requests handed to the core by the request layer
- Interaction and library snapshots returned by the core
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class TMDBModel(BaseModel):
    """Base for catalog payloads: unknown upstream fields are ignored."""
    model_config = ConfigDict(extra="ignore")


class TMDBMovie(TMDBModel):
    """A movie as listed in search and popular results."""
    id: int
    title: str = ""
    overview: Optional[str] = ""
    release_date: Optional[str] = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    vote_average: float = 0.0
    vote_count: int = 0


class TMDBSearchResponse(TMDBModel):
    page: int = 1
    results: List[TMDBMovie] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0


class TMDBGenre(TMDBModel):
    id: int
    name: str = ""


class TMDBCastMember(TMDBModel):
    id: int
    name: str = ""
    character: str = ""
    profile_path: Optional[str] = None
    order: int = 0
    gender: int = 0


class TMDBCrewMember(TMDBModel):
    id: int
    name: str = ""
    job: str = ""
    department: str = ""
    profile_path: Optional[str] = None
    gender: int = 0


class TMDBCredits(TMDBModel):
    id: Optional[int] = None
    cast: List[TMDBCastMember] = Field(default_factory=list)
    crew: List[TMDBCrewMember] = Field(default_factory=list)


class TMDBMovieDetails(TMDBModel):
    """
    Full movie detail, with credits appended by the catalog request.
    """
    id: int
    title: str = ""
    original_title: str = ""
    overview: Optional[str] = ""
    release_date: Optional[str] = ""
    runtime: Optional[int] = 0
    budget: int = 0
    revenue: int = 0
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    vote_average: float = 0.0
    vote_count: int = 0
    imdb_id: Optional[str] = None
    original_language: str = ""
    genres: List[TMDBGenre] = Field(default_factory=list)
    credits: Optional[TMDBCredits] = None

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "id": 27205,
                "title": "Inception",
                "original_title": "Inception",
                "release_date": "2010-07-15",
                "runtime": 148,
                "original_language": "en",
                "poster_path": "/oYuLEt3zVCKq57qu2F8dT7NIa6f.jpg",
            }
        }
    )


class TMDBVideo(TMDBModel):
    key: str = ""
    name: str = ""
    site: str = ""
    type: str = ""
    official: bool = False


class TMDBVideoResponse(TMDBModel):
    id: Optional[int] = None
    results: List[TMDBVideo] = Field(default_factory=list)


class TMDBPersonDetails(TMDBModel):
    id: int
    name: str = ""
    biography: str = ""
    birthday: Optional[str] = None
    deathday: Optional[str] = None
    place_of_birth: Optional[str] = None
    profile_path: Optional[str] = None
    gender: int = 0


class TMDBPersonCastMovie(TMDBMovie):
    character: str = ""


class TMDBPersonCrewMovie(TMDBMovie):
    job: str = ""
    department: str = ""


class TMDBPersonCredits(TMDBModel):
    id: Optional[int] = None
    cast: List[TMDBPersonCastMovie] = Field(default_factory=list)
    crew: List[TMDBPersonCrewMovie] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Interaction requests
# ---------------------------------------------------------------------------

class TrackMovieRequest(BaseModel):
    """
    Partial update of a user's watch state.

    A field left as None was not supplied and keeps its stored value;
    False is a real value and is written.
    """
    is_watched: Optional[bool] = None
    is_favorite: Optional[bool] = None
    is_watchlist: Optional[bool] = None
    watched_date: Optional[datetime] = None

    def supplied_fields(self) -> Dict[str, object]:
        """Return only the fields the caller actually supplied."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if value is not None
        }


class RateMovieRequest(BaseModel):
    """Star rating; range and 0.5 quantization are checked by the service."""
    rating: float


class ReviewRequest(BaseModel):
    content: str = Field(..., min_length=1)
    is_spoiler: bool = False


# ---------------------------------------------------------------------------
# Snapshots returned by the core
# ---------------------------------------------------------------------------

class ReviewSnapshot(BaseModel):
    content: str
    is_spoiler: bool = False
    created_at: Optional[datetime] = None


class UserInteraction(BaseModel):
    """
    A user's relationship to one movie. Missing rows read as defaults.
    """
    is_watched: bool = False
    is_favorite: bool = False
    is_watchlist: bool = False
    watched_date: Optional[datetime] = None
    user_rating: Optional[float] = None
    user_review: Optional[ReviewSnapshot] = None

    def to_dict(self) -> Dict[str, object]:
        return self.model_dump(mode="json", exclude_none=True)


class MovieSummary(BaseModel):
    id: int
    tmdb_id: int
    title: str
    release_year: int = 0
    poster_url: str = ""

    model_config = ConfigDict(from_attributes=True)


class UserMovieStats(BaseModel):
    """Library statistics shown on a user's profile."""
    watched_count: int = 0
    watched_this_year_count: int = 0
    reviews_count: int = 0
    rating_distribution: Dict[str, int] = Field(default_factory=dict)
    recent_watched: List[MovieSummary] = Field(default_factory=list)
    favorite_movies: List[MovieSummary] = Field(default_factory=list)
