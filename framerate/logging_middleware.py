"""
Flask middleware for structured logging.

This module provides Flask middleware to:
- Inject request_id into logging context, and user_id when the gateway header is trusted
- Log HTTP request/response details
- Track request duration and status codes
"""

import time
from flask import Flask, request, g
from framerate.logging_config import get_logger
from framerate.logging_context import (
    set_request_id,
    set_user_id,
    clear_context,
)
from framerate.metrics import http_requests_total, http_request_duration_seconds

logger = get_logger(__name__)

# Set by the authentication gateway. Clients can send it too, so it is only
# read when TRUST_USER_ID_HEADER is on.
USER_ID_HEADER = "X-User-ID"


def init_logging_middleware(app: Flask):
    """
    Initialize logging middleware for Flask application.

    Args:
        app: Flask application instance
    """

    @app.before_request
    def before_request_logging():
        request_id = set_request_id(request.headers.get("X-Request-ID") or None)
        g.request_id = request_id
        g.request_start_time = time.time()

        if app.config.get("TRUST_USER_ID_HEADER"):
            user_id = request.headers.get(USER_ID_HEADER, "")
            if user_id.isdigit():
                set_user_id(int(user_id))

        logger.info(
            "request_started",
            method=request.method,
            path=request.path,
            remote_addr=request.remote_addr,
            user_agent=request.headers.get('User-Agent', 'Unknown'),
        )

    @app.after_request
    def after_request_logging(response):
        duration = None
        if hasattr(g, 'request_start_time'):
            duration = time.time() - g.request_start_time

        endpoint = request.url_rule.rule if request.url_rule else "unmatched"
        http_requests_total.labels(
            method=request.method, endpoint=endpoint, status=response.status_code
        ).inc()
        if duration is not None:
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)

        logger.info(
            "request_completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2) if duration is not None else None,
        )

        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        return response

    @app.teardown_request
    def teardown_request_logging(exception=None):
        if exception:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.path,
                error=str(exception),
                exc_info=True,
            )

        # Clear context to avoid leaking between requests
        clear_context()
