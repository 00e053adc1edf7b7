"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database status and messaging configuration
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from todo_app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Messaging (configuration only; no broker round-trip) ─────────
    gateway = current_app.extensions.get("messaging")
    checks["messaging"] = {
        "status": "ok" if gateway is not None else "error",
        "backend": current_app.config.get("MESSAGING_BACKEND"),
        "sharing_queue": current_app.config.get("SHARING_QUEUE"),
        "updates_topic": current_app.config.get("UPDATES_TOPIC"),
    }
    if gateway is None:
        overall = False

    checks["app"] = {
        "name": "Todo Collaboration Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
