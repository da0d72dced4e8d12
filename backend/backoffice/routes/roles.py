# Overview: Flask API routes for role management; parses input and returns JSON responses.

"""
Role routes.

Roles are a module x action permission grid with a global/branch scope.
Updates and deletes that would remove the last global Admin role answer
409 and change nothing. Renaming or deleting a role that accounts still
use answers 400.

All endpoints require the matching "settings" permission.
"""

from flask import Blueprint, Response, request, jsonify, g

from ..decorators import governance_errors, require_auth, require_permission
from ..permissions import ACTIONS, MODULES
from ..services.governance_service import RoleQuery, get_governance

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


def _mutation_response(result, status: int = 200):
    return jsonify({
        "role": get_governance().role_view(result.record).to_dict(),
        "local_only": result.local_only,
        "audit_entry": result.audit_entry.to_dict() if result.audit_entry else None,
    }), status


@roles_bp.get("")
@require_auth
@require_permission("settings", "read")
@governance_errors
def list_roles():
    """
    List roles with their user counts.

    Query params:
    - q: substring of name or description
    - scope: global | branch | all
    - sort: name | created_at | users_count (default created_at)
    - direction: asc | desc (default desc)
    """
    views = get_governance().search_roles(RoleQuery.from_args(request.args))
    return jsonify({"roles": [v.to_dict() for v in views], "count": len(views)})


@roles_bp.get("/permission-keys")
@require_auth
@require_permission("settings", "read")
def permission_keys():
    """The closed module and action key sets, in display order."""
    return jsonify({
        "modules": [{"key": k, "label": label} for k, label in MODULES],
        "actions": [{"key": k, "label": label} for k, label in ACTIONS],
    })


@roles_bp.get("/export")
@require_auth
@require_permission("settings", "export")
@governance_errors
def export_roles():
    csv_text = get_governance().export_roles(RoleQuery.from_args(request.args))
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=roles.csv"},
    )


@roles_bp.get("/<role_id>")
@require_auth
@require_permission("settings", "read")
@governance_errors
def get_role(role_id: str):
    facade = get_governance()
    data = facade.role_view(facade.roles.get(role_id)).to_dict()
    data["is_last_global_admin"] = facade.roles.is_last_global_admin(role_id)
    return jsonify({"role": data})


@roles_bp.get("/<role_id>/permissions")
@require_auth
@require_permission("settings", "read")
@governance_errors
def role_permissions(role_id: str):
    return jsonify(get_governance().permission_preview(role_id))


@roles_bp.post("")
@require_auth
@require_permission("settings", "create")
@governance_errors
def create_role():
    """
    Create a role.

    Request body:
    - name: str (required, unique per scope, case-insensitive)
    - scope: "global" | "branch" (required)
    - description: str (optional)
    - permissions: {module: {action: bool}} or {module: [action, ...]}
    """
    result = get_governance().create_role(request.get_json(silent=True), actor=g.actor_email)
    return _mutation_response(result, 201)


@roles_bp.put("/<role_id>")
@require_auth
@require_permission("settings", "update")
@governance_errors
def update_role(role_id: str):
    result = get_governance().update_role(role_id, request.get_json(silent=True), actor=g.actor_email)
    return _mutation_response(result)


@roles_bp.delete("/<role_id>")
@require_auth
@require_permission("settings", "delete")
@governance_errors
def delete_role(role_id: str):
    result = get_governance().delete_role(role_id, actor=g.actor_email)
    return _mutation_response(result)
