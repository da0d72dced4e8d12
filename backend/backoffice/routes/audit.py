# Overview: Flask API route for the governance activity feed.

from flask import Blueprint, request, jsonify

from ..decorators import governance_errors, require_auth, require_permission
from ..services.governance_service import get_governance

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_permission("settings", "read")
@governance_errors
def list_activity():
    """
    Newest-first audit entries.

    Query params (optional):
    - action: create | update | delete | activate | deactivate | suspend
    - actor: actor email (exact, case-insensitive)
    - target: target email or id
    - target_type: account | role
    - limit: int (default AUDIT_DISPLAY_LIMIT)
    """
    entries = get_governance().activity(
        action=request.args.get("action"),
        actor=request.args.get("actor"),
        target=request.args.get("target"),
        target_type=request.args.get("target_type"),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)})
