# backend/stoq/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db
from ..models import User, InventoryItem, Order, SessionToken
from stoq.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "inventory_items": db.session.query(InventoryItem).count(),
            "orders": db.session.query(Order).count(),
            "active_sessions": db.session.query(SessionToken).filter(
                SessionToken.is_revoked.is_(False),
                SessionToken.expires_at >= utcnow(),
            ).count(),
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": details,
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, (200 if healthy else 503)


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information. Never exposes secrets or paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "company": current_app.config.get("COMPANY_NAME"),
        "server_time": to_utc_z(utcnow()),
    }
