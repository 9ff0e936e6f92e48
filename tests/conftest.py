import json
from unittest.mock import Mock, patch

import pytest

from framerate.app import TMDB_EXTENSION, create_app, get_movie_service
from framerate.logging_context import clear_context
from framerate.models import db
from framerate.repository import MovieRepository


INCEPTION = {
    "id": 27205,
    "title": "Inception",
    "original_title": "Inception",
    "overview": "Cobb, a skilled thief who commits corporate espionage...",
    "release_date": "2010-07-15",
    "runtime": 148,
    "poster_path": "/oYuLEt3zVCKq57qu2F8dT7NIa6f.jpg",
    "backdrop_path": "/s3TBrRGB1iav7gFOCNx3H31MoES.jpg",
    "original_language": "en",
    "vote_average": 8.4,
    "vote_count": 35000,
    "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
    "credits": {
        "cast": [{"id": 6193, "name": "Leonardo DiCaprio", "character": "Cobb", "order": 0}],
        "crew": [{"id": 525, "name": "Christopher Nolan", "job": "Director", "department": "Directing"}],
    },
}

INTERSTELLAR = {
    "id": 157336,
    "title": "Interstellar",
    "original_title": "Interstellar",
    "overview": "The adventures of a group of explorers...",
    "release_date": "2014-11-05",
    "runtime": 169,
    "poster_path": "/gEU2QniE6E77NI6lCU6MxlNBvIx.jpg",
    "backdrop_path": None,
    "original_language": "en",
}


def make_response(status_code=200, payload=None, text=None):
    """Build a fake requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = payload
    response.text = text if text is not None else json.dumps(payload)
    return response


class FakeCatalog:
    """Routes catalog GETs by path and records every call."""

    def __init__(self, base_url):
        self.base_url = base_url
        self.responses = {}
        self.calls = []

    def add(self, path, payload=None, status_code=200):
        self.responses[path] = make_response(status_code, payload)

    def get(self, url, params=None, headers=None, timeout=None):
        path = url[len(self.base_url):]
        self.calls.append({"path": path, "params": params, "headers": headers, "timeout": timeout})
        if path not in self.responses:
            return make_response(404, {"status_code": 34, "status_message": "The resource could not be found."})
        return self.responses[path]

    def calls_to(self, path):
        return [call for call in self.calls if call["path"] == path]


@pytest.fixture(autouse=True)
def clean_context():
    """Ensure clean logging context for every test."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def app(monkeypatch):
    """Fresh app on an in-memory database with the in-process cache."""
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("TRUST_USER_ID_HEADER", raising=False)
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "CACHE_ENABLED": True,
        "REDIS_URL": None,
        "TMDB_API_KEY": "test-read-token",
        "MOVIE_SYNC_LANGUAGE": "fr-FR",
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tmdb_service(app):
    return app.extensions[TMDB_EXTENSION]


@pytest.fixture
def movie_service(app):
    return get_movie_service()


@pytest.fixture
def repository(app):
    return MovieRepository()


@pytest.fixture
def catalog(tmdb_service):
    """Fake TMDB serving Inception and Interstellar."""
    fake = FakeCatalog(tmdb_service.base_url)
    fake.add("/movie/27205", INCEPTION)
    fake.add("/movie/157336", INTERSTELLAR)
    with patch.object(tmdb_service.http.session, "get", side_effect=fake.get):
        yield fake
