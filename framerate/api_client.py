"""
CatalogHTTPClient: HTTP transport for the external movie catalog (TMDB).

This module provides the GET primitive used by the catalog service, with a
bounded timeout, bearer authentication, retries with exponential backoff and
a standardized error taxonomy.

Key Features:
- One timeout budget (default 10s) covering every attempt and backoff of a call
- Bearer credential injected on every request
- Retries with exponential backoff for 5xx and 429 responses
- Timeouts are never retried, and no retry starts once the budget is spent
- JSON decoding with a dedicated error type

Error Taxonomy:
- TransientError: Temporary failures (network issues, timeouts, 5xx errors)
- AuthError: Authentication/authorization failures (401, 403)
- QuotaError: Rate limiting or quota exceeded (429)
- NotFoundError: Resource not found (404)
- DecodeError: Response body is not the expected JSON document
"""

import os
import time
import structlog
import requests
from typing import Dict, Any, Optional
from enum import Enum

logger = structlog.get_logger(__name__)


class APIErrorType(Enum):
    """Classification of API errors."""
    TRANSIENT = "transient"  # Temporary failures (network issues, 5xx)
    AUTH = "auth"  # Authentication failures (401, 403)
    QUOTA = "quota"  # Rate limiting (429)
    NOT_FOUND = "not_found"  # Resource not found (404)
    DECODE = "decode"  # Undecodable response body
    UNKNOWN = "unknown"  # Unclassified errors


class APIError(Exception):
    """Base exception for all catalog API errors."""

    def __init__(self, message: str, error_type: APIErrorType, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)


class TransientError(APIError):
    """Temporary error that may succeed on retry."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message, APIErrorType.TRANSIENT, status_code, original_error)


class AuthError(APIError):
    """Authentication or authorization error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.AUTH, status_code)


class QuotaError(APIError):
    """Rate limiting or quota exceeded error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.QUOTA, status_code)


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.NOT_FOUND, status_code)


class DecodeError(APIError):
    """Response could not be decoded into the expected document."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, APIErrorType.DECODE, None, original_error)


class CatalogHTTPClient:
    """
    GET transport for the catalog API.

    One ``requests.Session`` is kept per client for connection reuse. Every
    attempt carries the bearer credential and the configured timeout.

    Configuration via environment variables:
    - API_CLIENT_TIMEOUT: Per-attempt timeout in seconds (default: 10.0)
    - API_CLIENT_MAX_RETRIES: Extra attempts after a 5xx/429/connection failure (default: 2)
    - API_CLIENT_BACKOFF_BASE: First backoff delay in seconds, doubled per retry (default: 0.5)
    """

    def __init__(
        self,
        bearer_token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None
    ):
        self.bearer_token = bearer_token
        self.timeout = timeout if timeout is not None else float(os.getenv("API_CLIENT_TIMEOUT", "10.0"))
        self.max_retries = max_retries if max_retries is not None else int(os.getenv("API_CLIENT_MAX_RETRIES", "2"))
        self.backoff_base = backoff_base if backoff_base is not None else float(os.getenv("API_CLIENT_BACKOFF_BASE", "0.5"))

        self.session = requests.Session()

        logger.debug(
            "catalog_client_initialized",
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
        )

    def _classify_error(self, response: Optional[requests.Response],
                        exception: Optional[Exception]) -> APIErrorType:
        """Map an HTTP status, or a transport exception, onto APIErrorType."""
        if response is not None:
            status = response.status_code
            if status in (401, 403):
                return APIErrorType.AUTH
            if status == 404:
                return APIErrorType.NOT_FOUND
            if status == 429:
                return APIErrorType.QUOTA
            if 500 <= status < 600:
                return APIErrorType.TRANSIENT
            return APIErrorType.UNKNOWN

        if isinstance(exception, requests.exceptions.RequestException):
            return APIErrorType.TRANSIENT
        return APIErrorType.UNKNOWN

    def _should_retry(self, error_type: APIErrorType, attempt: int,
                      exception: Optional[Exception] = None) -> bool:
        """
        Retry 5xx, 429 and connection failures while attempts remain.

        A timeout is final: the configured timeout bounds the whole call.
        """
        if attempt >= self.max_retries:
            return False
        if isinstance(exception, requests.exceptions.Timeout):
            return False
        return error_type in (APIErrorType.TRANSIENT, APIErrorType.QUOTA)

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff: 0.5s, 1s, 2s (by default)."""
        return self.backoff_base * (2 ** attempt)

    def _raise_classified_error(self, error_type: APIErrorType, message: str,
                                status_code: Optional[int] = None,
                                original_error: Optional[Exception] = None):
        if error_type == APIErrorType.AUTH:
            raise AuthError(message, status_code)
        if error_type == APIErrorType.QUOTA:
            raise QuotaError(message, status_code)
        if error_type == APIErrorType.NOT_FOUND:
            raise NotFoundError(message, status_code)
        if error_type == APIErrorType.TRANSIENT:
            raise TransientError(message, status_code, original_error)
        raise APIError(message, error_type, status_code, original_error)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        if extra:
            headers.update(extra)
        return headers

    def _attempt(self, url, params, headers, timeout):
        """
        Run one GET.

        Returns:
            (response, None) when a response arrived (any status), or
            (None, exception) when the transport failed
        """
        try:
            return self.session.get(url, params=params, headers=headers, timeout=timeout), None
        except requests.exceptions.RequestException as e:
            return None, e

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        api_name: str = "TMDB"
    ) -> requests.Response:
        """
        GET ``url`` and return the 2xx response.

        Args:
            url: Request URL
            params: Query parameters
            headers: Extra request headers
            timeout: Override the total time budget for this call
            api_name: Name of the API for logging

        Raises:
            AuthError: 401 or 403
            QuotaError: 429 once retries are exhausted
            NotFoundError: 404
            TransientError: 5xx or connection failure once retries or the time budget are exhausted, or a timeout
            APIError: Any other non-2xx status
        """
        request_timeout = timeout or self.timeout
        deadline = time.monotonic() + request_timeout
        request_headers = self._headers(headers)
        attempt = 0

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransientError(f"{api_name} request exceeded its {request_timeout}s budget")

            response, exception = self._attempt(url, params, request_headers, remaining)

            if response is not None and response.ok:
                if attempt > 0:
                    logger.info("catalog_request_recovered", api_name=api_name, attempts=attempt + 1)
                return response

            error_type = self._classify_error(response, exception)
            if response is not None:
                status_code = response.status_code
                detail = f"status {status_code}: {response.text[:200]}"
            else:
                status_code = None
                detail = f"{type(exception).__name__}: {exception}"

            logger.warning(
                "catalog_request_failed",
                api_name=api_name,
                attempt=attempt + 1,
                error_type=error_type.value,
                detail=detail,
            )

            if not self._should_retry(error_type, attempt, exception):
                self._raise_classified_error(
                    error_type,
                    f"{api_name} request failed with {detail}",
                    status_code,
                    exception,
                )

            delay = self._calculate_backoff(attempt)
            # The backoff and the next attempt must both fit before the deadline
            if deadline - time.monotonic() - delay <= 0:
                logger.warning(
                    "catalog_request_budget_exhausted",
                    api_name=api_name,
                    attempts=attempt + 1,
                    timeout_s=request_timeout,
                )
                raise TransientError(
                    f"{api_name} request failed with {detail}; no time left in the {request_timeout}s budget to retry",
                    status_code,
                    exception,
                )

            logger.info("catalog_request_retry", api_name=api_name, delay_s=delay, attempt=attempt + 1)
            time.sleep(delay)
            attempt += 1

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        api_name: str = "TMDB"
    ) -> Any:
        """
        GET ``url`` and decode the JSON body.

        Raises:
            DecodeError: Body is not valid JSON
            APIError: Any error raised by ``get``
        """
        response = self.get(url, params=params, timeout=timeout, api_name=api_name)
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{api_name} returned an undecodable body: {e}", e) from e

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
