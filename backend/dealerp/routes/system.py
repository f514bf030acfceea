# backend/dealerp/routes/system.py
"""
System health and version endpoints.
"""

import os
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Location, Permission, Role, User
from ..permissions import DEFAULT_ROLES
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

APP_VERSION = "1.0.0"


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        location_count = db.session.query(Location).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "locations": location_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_auth_service_health() -> dict:
    """Roles and permissions must be bootstrapped (`flask system init`)."""
    start_time = time.time()
    try:
        missing_roles = [
            name for name, _ in DEFAULT_ROLES
            if not db.session.query(Role).filter_by(name=name).first()
        ]
        permission_count = db.session.query(Permission).count()
        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "permissions_initialized": permission_count > 0,
            "permission_count": permission_count,
        }
        if missing_roles or not permission_count:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Missing roles: {', '.join(missing_roles)}" if missing_roles else "No permissions",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Auth service health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Auth service error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    auth_health = check_auth_service_health()

    all_checks = [database_health, auth_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "auth_service": auth_health,
        }
    }, http_status


@system_bp.get("/version")
def version():
    return {
        "name": "dealerp",
        "version": APP_VERSION,
        "commit": os.environ.get("GIT_COMMIT"),
    }
