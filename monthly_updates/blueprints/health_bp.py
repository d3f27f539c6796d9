"""
Health endpoints.

    GET /api/v1/health/ready  200 while the process is up
    GET /api/v1/health/live   database, rate-limit storage and reporting-period
                              state; 503 only when the database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from monthly_updates.blueprints import API_PREFIX
from monthly_updates.models import db
from monthly_updates.services import period_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix=f"{API_PREFIX}/health")


def _timed(check) -> dict:
    started = time.perf_counter()
    check()
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _ping_redis(url: str) -> None:
    import redis

    redis.from_url(url, socket_timeout=2).ping()


def _periods() -> dict:
    """A missing active period or an overdue lock is a warning, not an outage."""
    current = period_service.get_current_period()
    pending = len(period_service.find_pending_locks())
    return {
        "status": "ok" if current is not None and not pending else "warning",
        "current": current.period_name if current is not None else None,
        "pendingLocks": pending,
    }


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}

    try:
        checks["database"] = _timed(lambda: db.session.execute(db.text("SELECT 1")))
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        logger.error("Health check: database unreachable: %s", exc)
    database_ok = checks["database"]["status"] == "ok"

    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url.startswith("redis"):
        try:
            checks["redis"] = _timed(lambda: _ping_redis(redis_url))
        except Exception as exc:
            # Only the rate limiter uses it.
            checks["redis"] = {"status": "error", "detail": str(exc)}
    else:
        checks["redis"] = {"status": "skipped", "detail": "no REDIS_URL configured"}

    if database_ok:
        checks["periods"] = _periods()

    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}

    return jsonify({
        "status": "healthy" if database_ok else "degraded",
        "checks": checks,
    }), 200 if database_ok else 503
