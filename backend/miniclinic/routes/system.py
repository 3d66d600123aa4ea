# backend/miniclinic/routes/system.py
"""
System health and version endpoints.

Health reports database reachability and whether RBAC has been seeded.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Role, Permission, SessionToken, User
from ..permissions import DEFAULT_ROLES
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


def check_database_health() -> dict:
    """Database connectivity and table counts."""
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "active_sessions": db.session.query(SessionToken).filter(
                SessionToken.is_revoked.is_(False),
                SessionToken.expires_at >= utcnow(),
            ).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_rbac_health() -> dict:
    """Default roles present and permissions seeded."""
    start_time = time.time()
    try:
        existing = {name for (name,) in db.session.query(Role.name).all()}
        missing_roles = [name for name, _, _ in DEFAULT_ROLES if name not in existing]
        permission_count = db.session.query(Permission).count()

        details = {
            "permissions_initialized": permission_count > 0,
            "permission_count": permission_count,
        }
        if missing_roles or not permission_count:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing roles: {', '.join(missing_roles)}" if missing_roles else "No permissions seeded",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except Exception:
        current_app.logger.exception("RBAC health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "RBAC check error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: a dependency is unhealthy
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "rbac": check_rbac_health(),
    }

    statuses = {c["status"] for c in checks.values()}
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    return {
        "api_version": "1.0.0",
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "currency": current_app.config["CURRENCY"],
        "server_time": to_utc_z(utcnow()),
    }
