# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the governance registries hold
a global Admin role.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Account, Role
from ..services.governance_service import get_governance
from backoffice.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        account_count = db.session.query(Account).count()
        role_count = db.session.query(Role).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "accounts": account_count,
                "roles": role_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_governance_health() -> dict:
    """
    Degraded when the in-memory registries have drifted from the store
    (local-only writes) or no global Admin role is loaded.
    """
    start_time = time.time()
    try:
        facade = get_governance()
        admin_roles = facade.roles.admin_roles()
        local_only = sum(1 for e in facade.audit.entries() if e.local_only)

        elapsed_ms = (time.time() - start_time) * 1000
        details = {
            "accounts_loaded": len(facade.accounts.all()),
            "roles_loaded": len(facade.roles.all()),
            "global_admin_roles": len(admin_roles),
            "local_only_writes": local_only,
        }
        if not admin_roles or local_only:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "details": details,
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Governance health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Governance error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    governance_health = check_governance_health()

    all_checks = [database_health, governance_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "governance": governance_health,
        }
    }, http_status
