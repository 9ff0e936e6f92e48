"""
Unit tests for CatalogHTTPClient.

Tests cover:
- Timeout handling (never retried, one budget per call)
- Retry logic with exponential backoff for 5xx and 429
- Error classification (Auth, Quota, NotFound, Transient, Decode)
- Bearer credential injection
"""

import pytest
import requests
from unittest.mock import Mock, patch
from framerate.api_client import (
    CatalogHTTPClient,
    APIError,
    AuthError,
    QuotaError,
    NotFoundError,
    TransientError,
    DecodeError,
    APIErrorType
)


def _response(status_code, text="", payload=None):
    response = Mock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


class _SimulatedClock:
    """Monotonic clock advanced by simulated request latency and sleeps."""

    def __init__(self, start=1000.0):
        self.now = start

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds

    def slow_server(self, latency, status_code=503):
        """session.get stand-in that answers after ``latency`` seconds or times out first."""
        timeouts = []

        def get(url, params=None, headers=None, timeout=None):
            timeouts.append(timeout)
            if latency > timeout:
                self.now += timeout
                raise requests.exceptions.Timeout("read timed out")
            self.now += latency
            return _response(status_code, "unavailable")

        return get, timeouts


class TestCatalogHTTPClient:
    """Test suite for CatalogHTTPClient."""

    def test_initialization_defaults(self, monkeypatch):
        monkeypatch.delenv("API_CLIENT_TIMEOUT", raising=False)
        monkeypatch.delenv("API_CLIENT_MAX_RETRIES", raising=False)
        monkeypatch.delenv("API_CLIENT_BACKOFF_BASE", raising=False)

        client = CatalogHTTPClient()
        assert client.timeout == 10.0
        assert client.max_retries == 2
        assert client.backoff_base == 0.5

    def test_initialization_from_env(self, monkeypatch):
        monkeypatch.setenv("API_CLIENT_TIMEOUT", "4.0")
        monkeypatch.setenv("API_CLIENT_MAX_RETRIES", "5")
        monkeypatch.setenv("API_CLIENT_BACKOFF_BASE", "2.0")

        client = CatalogHTTPClient()
        assert client.timeout == 4.0
        assert client.max_retries == 5
        assert client.backoff_base == 2.0

    def test_successful_request_sends_bearer_and_timeout(self):
        client = CatalogHTTPClient(bearer_token="read-token", timeout=7.0)
        mock_response = _response(200, payload={"id": 1})

        with patch.object(client.session, 'get', return_value=mock_response) as mock_get:
            response = client.get("https://api.example.com/movie/1", params={"language": "en-US"})

        assert response is mock_response
        _, kwargs = mock_get.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer read-token"
        assert kwargs["headers"]["Accept"] == "application/json"
        assert 0 < kwargs["timeout"] <= 7.0
        assert kwargs["params"] == {"language": "en-US"}

    def test_no_authorization_header_without_token(self):
        client = CatalogHTTPClient()

        with patch.object(client.session, 'get', return_value=_response(200)) as mock_get:
            client.get("https://api.example.com/test")

        assert "Authorization" not in mock_get.call_args[1]["headers"]

    @pytest.mark.parametrize("status,error_cls", [
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
    ])
    def test_non_retryable_status_raises_once(self, status, error_cls):
        client = CatalogHTTPClient(max_retries=3)

        with patch.object(client.session, 'get', return_value=_response(status, "nope")) as mock_get:
            with pytest.raises(error_cls) as exc_info:
                client.get("https://api.example.com/test")

        assert exc_info.value.status_code == status
        assert mock_get.call_count == 1

    def test_unclassified_4xx_raises_api_error(self):
        client = CatalogHTTPClient(max_retries=3)

        with patch.object(client.session, 'get', return_value=_response(422, "bad")):
            with pytest.raises(APIError) as exc_info:
                client.get("https://api.example.com/test")

        assert exc_info.value.error_type == APIErrorType.UNKNOWN

    @patch('framerate.api_client.time.sleep')
    def test_server_error_retried_then_succeeds(self, mock_sleep):
        client = CatalogHTTPClient(max_retries=2, backoff_base=0.5)
        responses = [_response(503, "unavailable"), _response(200, payload={})]

        with patch.object(client.session, 'get', side_effect=responses) as mock_get:
            response = client.get("https://api.example.com/test")

        assert response.ok
        assert mock_get.call_count == 2
        mock_sleep.assert_called_once_with(0.5)

    @patch('framerate.api_client.time.sleep')
    def test_server_error_exhausts_retries(self, mock_sleep):
        client = CatalogHTTPClient(max_retries=2, backoff_base=0.5)

        with patch.object(client.session, 'get', return_value=_response(500, "boom")) as mock_get:
            with pytest.raises(TransientError) as exc_info:
                client.get("https://api.example.com/test")

        assert exc_info.value.status_code == 500
        assert mock_get.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @patch('framerate.api_client.time.sleep')
    def test_quota_error_retried(self, mock_sleep):
        client = CatalogHTTPClient(max_retries=1)

        with patch.object(client.session, 'get', return_value=_response(429, "slow down")) as mock_get:
            with pytest.raises(QuotaError):
                client.get("https://api.example.com/test")

        assert mock_get.call_count == 2

    @patch('framerate.api_client.time.sleep')
    def test_timeout_is_not_retried(self, mock_sleep):
        client = CatalogHTTPClient(max_retries=3)

        with patch.object(client.session, 'get', side_effect=requests.exceptions.Timeout("read timed out")) as mock_get:
            with pytest.raises(TransientError) as exc_info:
                client.get("https://api.example.com/test")

        assert mock_get.call_count == 1
        assert isinstance(exc_info.value.original_error, requests.exceptions.Timeout)
        mock_sleep.assert_not_called()

    @patch('framerate.api_client.time.sleep')
    def test_connection_error_retried(self, mock_sleep):
        client = CatalogHTTPClient(max_retries=1)
        side_effect = [requests.exceptions.ConnectionError("refused"), _response(200, payload={})]

        with patch.object(client.session, 'get', side_effect=side_effect) as mock_get:
            response = client.get("https://api.example.com/test")

        assert response.ok
        assert mock_get.call_count == 2

    def test_get_json_decodes_body(self):
        client = CatalogHTTPClient()

        with patch.object(client.session, 'get', return_value=_response(200, payload={"id": 27205})):
            assert client.get_json("https://api.example.com/movie/27205") == {"id": 27205}

    def test_get_json_undecodable_body(self):
        client = CatalogHTTPClient()
        response = _response(200, "<html>")
        response.json.side_effect = ValueError("Expecting value")

        with patch.object(client.session, 'get', return_value=response):
            with pytest.raises(DecodeError) as exc_info:
                client.get_json("https://api.example.com/test")

        assert exc_info.value.error_type == APIErrorType.DECODE
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_context_manager_closes_session(self):
        client = CatalogHTTPClient()
        client.session = Mock()

        with client:
            pass

        client.session.close.assert_called_once()


class TestCallBudget:
    """A call, retries and backoff included, never outlives its timeout."""

    def _patched(self, clock):
        return (
            patch('framerate.api_client.time.monotonic', side_effect=clock.monotonic),
            patch('framerate.api_client.time.sleep', side_effect=clock.sleep),
        )

    def test_slow_server_errors_stay_within_timeout(self):
        clock = _SimulatedClock()
        client = CatalogHTTPClient(timeout=10.0, max_retries=2, backoff_base=0.5)
        slow_get, _ = clock.slow_server(latency=client.timeout - 0.5)
        started = clock.now
        monotonic_patch, sleep_patch = self._patched(clock)

        with monotonic_patch, sleep_patch as mock_sleep:
            with patch.object(client.session, 'get', side_effect=slow_get) as mock_get:
                with pytest.raises(TransientError) as exc_info:
                    client.get("https://api.example.com/movie/27205")

        assert clock.now - started <= client.timeout
        assert exc_info.value.status_code == 503
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    def test_attempts_receive_remaining_budget(self):
        clock = _SimulatedClock()
        client = CatalogHTTPClient(timeout=10.0, max_retries=5, backoff_base=0.5)
        slow_get, timeouts = clock.slow_server(latency=4.0)
        started = clock.now
        monotonic_patch, sleep_patch = self._patched(clock)

        with monotonic_patch, sleep_patch:
            with patch.object(client.session, 'get', side_effect=slow_get):
                with pytest.raises(TransientError) as exc_info:
                    client.get("https://api.example.com/movie/27205")

        # 4s + 0.5s backoff + 4s + 1s backoff leaves 0.5s for the last attempt
        assert timeouts == pytest.approx([10.0, 5.5, 0.5])
        assert isinstance(exc_info.value.original_error, requests.exceptions.Timeout)
        assert clock.now - started == pytest.approx(client.timeout)

    def test_per_call_timeout_override_sets_budget(self):
        clock = _SimulatedClock()
        client = CatalogHTTPClient(timeout=10.0, max_retries=2, backoff_base=0.5)
        slow_get, timeouts = clock.slow_server(latency=2.0)
        started = clock.now
        monotonic_patch, sleep_patch = self._patched(clock)

        with monotonic_patch, sleep_patch:
            with patch.object(client.session, 'get', side_effect=slow_get):
                with pytest.raises(TransientError):
                    client.get("https://api.example.com/test", timeout=3.0)

        assert timeouts == pytest.approx([3.0, 0.5])
        assert clock.now - started <= 3.0

    def test_fast_recovery_within_budget(self):
        clock = _SimulatedClock()
        client = CatalogHTTPClient(timeout=10.0, max_retries=2, backoff_base=0.5)
        responses = [_response(503, "unavailable"), _response(200, payload={"id": 27205})]
        monotonic_patch, sleep_patch = self._patched(clock)

        with monotonic_patch, sleep_patch as mock_sleep:
            with patch.object(client.session, 'get', side_effect=responses) as mock_get:
                response = client.get("https://api.example.com/movie/27205")

        assert response.ok
        assert mock_get.call_count == 2
        mock_sleep.assert_called_once_with(0.5)
        assert mock_get.call_args_list[1].kwargs["timeout"] == pytest.approx(9.5)
