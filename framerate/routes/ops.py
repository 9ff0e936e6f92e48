from flask import Blueprint, Response, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from framerate.logging_config import get_logger
from framerate.metrics import get_metrics
from framerate.models import db

logger = get_logger(__name__)

bp = Blueprint("ops", __name__)


@bp.route("/health", methods=["GET"])
def health():
    """
    GET /health
    Liveness plus dependency checks. The database is required; a cache
    outage only degrades the report since lookups fall through to TMDB.
    """
    checks = {}

    try:
        db.session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("health_check_database_failed", error=str(e))
        checks["database"] = "unavailable"

    cache = current_app.extensions.get("framerate.cache")
    if cache is None:
        checks["cache"] = "disabled"
    else:
        checks["cache"] = "ok" if cache.ping() else "unavailable"

    if checks["database"] != "ok":
        status, code = "unhealthy", 503
    elif checks["cache"] == "unavailable":
        status, code = "degraded", 200
    else:
        status, code = "healthy", 200

    return jsonify({"status": status, "service": "framerate", "checks": checks}), code


@bp.route("/metrics", methods=["GET"])
def metrics():
    """
    GET /metrics
    Expose Prometheus metrics: HTTP traffic, TMDB calls, cache hit/miss
    counters, materializations and interaction writes.
    """
    metrics_data, content_type = get_metrics()
    return Response(metrics_data, mimetype=content_type)
