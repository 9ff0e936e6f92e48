"""
Prometheus metrics for FrameRate.

This module provides metrics collection for monitoring request handling,
catalog API usage, caching effectiveness, movie materialization and
interaction writes.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from functools import wraps
import time

import structlog


# API Request Metrics
http_requests_total = Counter(
    'framerate_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'framerate_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# External API Call Metrics
external_api_calls_total = Counter(
    'framerate_external_api_calls_total',
    'Total number of external API calls',
    ['api_name', 'status']
)

external_api_duration_seconds = Histogram(
    'framerate_external_api_duration_seconds',
    'External API call duration in seconds',
    ['api_name']
)

# Cache Metrics
cache_hits_total = Counter(
    'framerate_cache_hits_total',
    'Total number of cache hits',
    ['cache_type']
)

cache_misses_total = Counter(
    'framerate_cache_misses_total',
    'Total number of cache misses',
    ['cache_type']
)

cache_errors_total = Counter(
    'framerate_cache_errors_total',
    'Total number of cache failures downgraded to misses',
    ['cache_type', 'operation']
)

# Synchronization Metrics
movie_materializations_total = Counter(
    'framerate_movie_materializations_total',
    'Total number of catalog movies materialized or refreshed locally',
    ['status']  # success, error
)

interaction_writes_total = Counter(
    'framerate_interaction_writes_total',
    'Total number of interaction writes',
    ['kind', 'status']  # kind: track, rate, review
)


logger = structlog.get_logger()


def track_external_api_call(api_name):
    """
    Decorator to track external API call metrics.

    Usage:
        @track_external_api_call('tmdb')
        def fetch():
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            status = 'success'
            try:
                return func(*args, **kwargs)
            except Exception:
                status = 'error'
                raise
            finally:
                duration = time.time() - start_time
                external_api_calls_total.labels(api_name=api_name, status=status).inc()
                external_api_duration_seconds.labels(api_name=api_name).observe(duration)

                logger.info(
                    "external_api_call",
                    api_name=api_name,
                    status=status,
                    duration_ms=round(duration * 1000, 2)
                )
        return wrapper
    return decorator


def track_cache_operation(cache_type, hit=True):
    """
    Record a cache hit or miss.

    Args:
        cache_type: Cache backend (e.g., 'redis', 'memory')
        hit: True for cache hit, False for cache miss
    """
    if hit:
        cache_hits_total.labels(cache_type=cache_type).inc()
    else:
        cache_misses_total.labels(cache_type=cache_type).inc()


def track_cache_error(cache_type, operation):
    """Record a cache failure that was downgraded to a miss."""
    cache_errors_total.labels(cache_type=cache_type, operation=operation).inc()


def track_materialization(success=True):
    movie_materializations_total.labels(status='success' if success else 'error').inc()


def track_interaction_write(kind, success=True):
    """
    Record an interaction write.

    Args:
        kind: One of 'track', 'rate', 'review'
        success: Whether the write was committed
    """
    interaction_writes_total.labels(kind=kind, status='success' if success else 'error').inc()


def get_metrics():
    """
    Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics_text, content_type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
