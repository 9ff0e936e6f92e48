import os
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from framerate.api_client import AuthError, CatalogHTTPClient, DecodeError
from framerate.cache import CacheStore, build_cache_key
from framerate.logging_config import get_logger
from framerate.metrics import track_external_api_call
from framerate.schemas import (
    TMDBCredits,
    TMDBMovieDetails,
    TMDBPersonCredits,
    TMDBPersonDetails,
    TMDBSearchResponse,
    TMDBVideoResponse,
)

logger = get_logger(__name__)

TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_IMAGE_BASE_URL = os.getenv("TMDB_IMAGE_BASE_URL", "https://image.tmdb.org/t/p")
DEFAULT_LANGUAGE = os.getenv("TMDB_DEFAULT_LANGUAGE", "en-US")

# Listings go stale with catalog churn; a movie's facts rarely change within a day
SEARCH_CACHE_TTL = int(os.getenv("TMDB_SEARCH_CACHE_TTL", "900"))
DETAIL_CACHE_TTL = int(os.getenv("TMDB_DETAIL_CACHE_TTL", "86400"))

IMAGE_SIZES = ("w92", "w154", "w185", "w342", "w500", "w780", "original")

T = TypeVar("T", bound=BaseModel)


class TMDBService:
    """
    Read-through client for the TMDB catalog.

    Each operation derives its cache key from the operation name and every
    normalized parameter, reads the cache, and on a miss calls TMDB and
    caches the decoded result with the operation's TTL. Errors are raised
    and never cached. With ``cache=None`` every call goes to the network.
    """

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        http_client: Optional[CatalogHTTPClient] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        image_base_url: Optional[str] = None,
        default_language: Optional[str] = None,
        search_ttl: Optional[int] = None,
        detail_ttl: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("TMDB_API_KEY")
        self.cache = cache
        self.http = http_client or CatalogHTTPClient(bearer_token=self.api_key)
        self.base_url = (base_url or TMDB_BASE_URL).rstrip("/")
        self.image_base_url = (image_base_url or TMDB_IMAGE_BASE_URL).rstrip("/")
        self.default_language = default_language or DEFAULT_LANGUAGE
        self.search_ttl = search_ttl or SEARCH_CACHE_TTL
        self.detail_ttl = detail_ttl or DETAIL_CACHE_TTL

    # ------------------------------------------------------------------
    # cache-aside core
    # ------------------------------------------------------------------

    @track_external_api_call("tmdb")
    def _request(self, path: str, params: dict):
        if not self.api_key:
            raise AuthError("TMDB API key not configured.")
        return self.http.get_json(f"{self.base_url}{path}", params=params, api_name="TMDB")

    def _fetch(self, cache_key: str, path: str, params: dict, schema: Type[T], ttl: int) -> T:
        if self.cache is not None:
            hit, cached = self.cache.get(cache_key)
            if hit:
                try:
                    result = schema.model_validate(cached)
                except ValidationError:
                    logger.warning("tmdb_cache_entry_invalid", cache_key=cache_key)
                    self.cache.delete(cache_key)
                else:
                    logger.info("tmdb_cache_hit", cache_key=cache_key)
                    return result

        payload = self._request(path, params)
        try:
            result = schema.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"TMDB response for {path} does not match {schema.__name__}: {e}", e) from e

        if self.cache is not None:
            self.cache.set(cache_key, result.model_dump(mode="json"), ttl)
            logger.debug("tmdb_result_cached", cache_key=cache_key, ttl=ttl)

        return result

    def _language(self, language: Optional[str]) -> str:
        return language or self.default_language

    # ------------------------------------------------------------------
    # listing queries (short TTL)
    # ------------------------------------------------------------------

    def search_movies(self, query: str, page: int = 1, language: Optional[str] = None) -> TMDBSearchResponse:
        query = (query or "").strip()
        page = page if page and page > 0 else 1
        language = self._language(language)
        return self._fetch(
            build_cache_key("tmdb", "search", query, page, language),
            "/search/movie",
            {"query": query, "page": page, "language": language},
            TMDBSearchResponse,
            self.search_ttl,
        )

    def get_popular_movies(self, page: int = 1, language: Optional[str] = None) -> TMDBSearchResponse:
        page = page if page and page > 0 else 1
        language = self._language(language)
        return self._fetch(
            build_cache_key("tmdb", "popular", page, language),
            "/movie/popular",
            {"page": page, "language": language},
            TMDBSearchResponse,
            self.search_ttl,
        )

    # ------------------------------------------------------------------
    # entity lookups (long TTL)
    # ------------------------------------------------------------------

    def get_movie_details(self, tmdb_id: int, language: Optional[str] = None) -> TMDBMovieDetails:
        """Movie detail with credits appended in the same request."""
        language = self._language(language)
        return self._fetch(
            build_cache_key("tmdb", "movie", tmdb_id, language),
            f"/movie/{tmdb_id}",
            {"language": language, "append_to_response": "credits"},
            TMDBMovieDetails,
            self.detail_ttl,
        )

    def get_movie_credits(self, tmdb_id: int) -> TMDBCredits:
        return self._fetch(
            build_cache_key("tmdb", "credits", tmdb_id),
            f"/movie/{tmdb_id}/credits",
            {},
            TMDBCredits,
            self.detail_ttl,
        )

    def get_movie_videos(self, tmdb_id: int) -> TMDBVideoResponse:
        return self._fetch(
            build_cache_key("tmdb", "videos", tmdb_id),
            f"/movie/{tmdb_id}/videos",
            {},
            TMDBVideoResponse,
            self.detail_ttl,
        )

    def get_person_details(self, person_id: int, language: Optional[str] = None) -> TMDBPersonDetails:
        language = self._language(language)
        return self._fetch(
            build_cache_key("tmdb", "person", person_id, language),
            f"/person/{person_id}",
            {"language": language},
            TMDBPersonDetails,
            self.detail_ttl,
        )

    def get_person_movie_credits(self, person_id: int, language: Optional[str] = None) -> TMDBPersonCredits:
        language = self._language(language)
        return self._fetch(
            build_cache_key("tmdb", "person_credits", person_id, language),
            f"/person/{person_id}/movie_credits",
            {"language": language},
            TMDBPersonCredits,
            self.detail_ttl,
        )

    # ------------------------------------------------------------------
    # image helpers
    # ------------------------------------------------------------------

    @staticmethod
    def validate_image_size(size: str) -> bool:
        return size in IMAGE_SIZES

    def get_image_url(self, path: Optional[str], size: str = "w500") -> str:
        """
        Build a full image URL from a TMDB image path.

        Returns an empty string when there is no path.

        Raises:
            ValueError: Unknown image size
        """
        if not path:
            return ""
        if not self.validate_image_size(size):
            raise ValueError(f"Invalid image size '{size}', expected one of {', '.join(IMAGE_SIZES)}")
        return f"{self.image_base_url}/{size}{path}"
