# Initialize structured logging early
from framerate.logging_config import get_logger, configure_structlog
configure_structlog()

import os
from typing import Any, Dict, Optional

from flask import Flask, current_app

from framerate.cache import create_cache_store
from framerate.logging_middleware import init_logging_middleware
from framerate.models import db
from framerate.repository import MovieRepository
from framerate.routes.ops import bp as ops_bp
from framerate.services.movie_service import MovieService
from framerate.services.tmdb_service import TMDBService

logger = get_logger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

CACHE_EXTENSION = "framerate.cache"
TMDB_EXTENSION = "framerate.tmdb"
MOVIE_SERVICE_EXTENSION = "framerate.movie_service"


def _default_config() -> Dict[str, Any]:
    return {
        "SQLALCHEMY_DATABASE_URI": os.getenv(
            "DATABASE_URL", "sqlite:///" + os.path.join(BASE_DIR, "framerate.db")
        ),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "TMDB_API_KEY": os.getenv("TMDB_API_KEY"),
        "CACHE_ENABLED": os.getenv("CACHE_ENABLED", "1") != "0",
        "REDIS_URL": os.getenv("REDIS_URL"),
        "MOVIE_SYNC_LANGUAGE": os.getenv("MOVIE_SYNC_LANGUAGE", "fr-FR"),
        "TRUST_USER_ID_HEADER": os.getenv("TRUST_USER_ID_HEADER", "0") == "1",
    }


def create_app(config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Build the FrameRate application.

    Wires the relational store, the cache store, the TMDB client and the
    movie service. The service is reachable through ``get_movie_service()``
    inside an application context.

    Args:
        config_overrides: Flask config values applied over the environment
            defaults (tests pass an in-memory SQLite URL here)
    """
    app = Flask(__name__)
    app.config.update(_default_config())
    if config_overrides:
        app.config.update(config_overrides)

    init_logging_middleware(app)

    db.init_app(app)
    with app.app_context():
        db.create_all()
    logger.info("database_initialized", dialect=app.config["SQLALCHEMY_DATABASE_URI"].split(":", 1)[0])

    cache = create_cache_store(
        enabled=app.config["CACHE_ENABLED"],
        redis_url=app.config["REDIS_URL"],
    )
    tmdb = TMDBService(cache=cache, api_key=app.config["TMDB_API_KEY"])
    if not tmdb.api_key:
        logger.warning("tmdb_api_key_missing", message="Catalog lookups will fail until TMDB_API_KEY is set")

    app.extensions[CACHE_EXTENSION] = cache
    app.extensions[TMDB_EXTENSION] = tmdb
    app.extensions[MOVIE_SERVICE_EXTENSION] = MovieService(
        MovieRepository(),
        tmdb,
        sync_language=app.config["MOVIE_SYNC_LANGUAGE"],
    )

    app.register_blueprint(ops_bp)

    logger.info("app_initialized", cache_backend=cache.backend)
    return app


def get_movie_service() -> MovieService:
    """MovieService of the current application."""
    return current_app.extensions[MOVIE_SERVICE_EXTENSION]
