# Overview: Flask API routes for account governance; parses input and returns JSON responses.

"""
Account routes.

Provides endpoints for:
- Account listing, lookup, summary and CSV export
- Account create / edit / delete
- Status transitions (activate, deactivate, suspend), confirmed by the caller
- Verification and password-reset emails

All endpoints require an active actor and the matching "staff" permission.
Every mutation is attributed to g.actor_email.
"""

from flask import Blueprint, Response, request, jsonify, g

from ..decorators import governance_errors, require_auth, require_permission
from ..services.governance_service import AccountQuery, get_governance

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


def _mutation_response(result, status: int = 200):
    facade = get_governance()
    return jsonify({
        "account": facade.account_to_dict(result.record),
        "local_only": result.local_only,
        "audit_entry": result.audit_entry.to_dict() if result.audit_entry else None,
    }), status


# =============================================================================
# READS
# =============================================================================

@accounts_bp.get("")
@require_auth
@require_permission("staff", "read")
@governance_errors
def list_accounts():
    """
    List accounts, filtered and sorted.

    Query params (all optional, "all" means no filter):
    - q: substring of name or email
    - role, status, account_type, branch
    - sort: name | created_at | last_login_at (default created_at)
    - direction: asc | desc (default desc)
    """
    facade = get_governance()
    accounts = facade.search_accounts(AccountQuery.from_args(request.args))
    return jsonify({
        "accounts": [facade.account_to_dict(a) for a in accounts],
        "count": len(accounts),
    })


@accounts_bp.get("/summary")
@require_auth
@require_permission("staff", "read")
@governance_errors
def account_summary():
    return jsonify(get_governance().account_summary())


@accounts_bp.get("/export")
@require_auth
@require_permission("staff", "export")
@governance_errors
def export_accounts():
    """CSV of the current filtered/sorted view. Accepts the same params as the list."""
    csv_text = get_governance().export_accounts(AccountQuery.from_args(request.args))
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=accounts.csv"},
    )


@accounts_bp.get("/<account_id>")
@require_auth
@require_permission("staff", "read")
@governance_errors
def get_account(account_id: str):
    facade = get_governance()
    account = facade.accounts.get(account_id)
    data = facade.account_to_dict(account)
    linked = facade.accounts.linked_user(account)
    data["linked_user"] = facade.account_to_dict(linked) if linked else None
    return jsonify({"account": data})


# =============================================================================
# MUTATIONS
# =============================================================================

@accounts_bp.post("")
@require_auth
@require_permission("staff", "create")
@governance_errors
def create_account():
    """
    Create an account.

    Request body: name, email, role, status, branch (required);
    account_type, linked_user_id, phone, position, department, employee_id.
    """
    result = get_governance().create_account(request.get_json(silent=True), actor=g.actor_email)
    return _mutation_response(result, 201)


@accounts_bp.put("/<account_id>")
@require_auth
@require_permission("staff", "update")
@governance_errors
def update_account(account_id: str):
    """Replace the editable fields of an account. Same body as create."""
    result = get_governance().update_account(
        account_id, request.get_json(silent=True), actor=g.actor_email
    )
    return _mutation_response(result)


@accounts_bp.delete("/<account_id>")
@require_auth
@require_permission("staff", "delete")
@governance_errors
def delete_account(account_id: str):
    result = get_governance().delete_account(account_id, actor=g.actor_email)
    return _mutation_response(result)


def _transition(account_id: str, action: str):
    """
    Status transitions need an explicit {"confirm": true}.

    Without it nothing changes and the response is 428 carrying the
    sentence the client should show before asking again.
    """
    facade = get_governance()
    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return jsonify({
            "error": "Confirmation required",
            "confirmation": facade.confirmation_prompt(account_id, action),
        }), 428
    return _mutation_response(facade.change_status(account_id, action, actor=g.actor_email))


@accounts_bp.post("/<account_id>/activate")
@require_auth
@require_permission("staff", "update")
@governance_errors
def activate_account(account_id: str):
    return _transition(account_id, "activate")


@accounts_bp.post("/<account_id>/deactivate")
@require_auth
@require_permission("staff", "update")
@governance_errors
def deactivate_account(account_id: str):
    return _transition(account_id, "deactivate")


@accounts_bp.post("/<account_id>/suspend")
@require_auth
@require_permission("staff", "update")
@governance_errors
def suspend_account(account_id: str):
    return _transition(account_id, "suspend")


# =============================================================================
# ACCOUNT EMAILS
# =============================================================================

def _notification_response(outcome):
    # The account itself is never affected by a failed send
    if outcome.sent:
        return jsonify({"sent": True})
    return jsonify({"sent": False, "error": outcome.error}), 502


@accounts_bp.post("/<account_id>/resend-verification")
@require_auth
@require_permission("staff", "update")
@governance_errors
def resend_verification(account_id: str):
    return _notification_response(
        get_governance().resend_verification(account_id, actor=g.actor_email)
    )


@accounts_bp.post("/<account_id>/password-reset")
@require_auth
@require_permission("staff", "update")
@governance_errors
def send_password_reset(account_id: str):
    return _notification_response(
        get_governance().send_password_reset(account_id, actor=g.actor_email)
    )
