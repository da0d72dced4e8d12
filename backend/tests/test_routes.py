"""
HTTP boundary tests.

Verifies:
- Unauthenticated requests return 401, missing permissions 403
- Governance errors map to 400 / 404 / 409, confirmation to 428
- Mutations are attributed to the token's actor
- Registry state is backed by the database tables
"""

import csv
import io

import pytest

from backoffice.extensions import db
from backoffice.models import Account, AccountAuditEntry, EmailOutbox
from backoffice.services import auth_service
from backoffice.services.governance_service import get_governance, reset_governance

from conftest import account_payload, auth_headers


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================


class TestAuth:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/accounts"),
            ("POST", "/api/accounts"),
            ("GET", "/api/accounts/export"),
            ("POST", "/api/accounts/x/suspend"),
            ("GET", "/api/roles"),
            ("DELETE", "/api/roles/x"),
            ("GET", "/api/audit"),
        ],
    )
    def test_requires_auth(self, client, seeded, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_bad_token(self, client, seeded):
        resp = client.get("/api/accounts", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_inactive_actor_is_rejected(self, client, seeded):
        get_governance().change_status(seeded["staff"].id, "suspend", actor=None)
        token = auth_service.issue_token(seeded["staff"].email)
        resp = client.get("/api/accounts", headers=auth_headers(token))
        assert resp.status_code == 401

    def test_staff_role_cannot_list_accounts(self, client, staff_headers):
        resp = client.get("/api/accounts", headers=staff_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "staff.read"

    def test_staff_role_cannot_manage_roles(self, client, staff_headers):
        resp = client.post("/api/roles", json={"name": "X", "scope": "branch"}, headers=staff_headers)
        assert resp.status_code == 403


# =============================================================================
# ACCOUNTS
# =============================================================================


class TestAccounts:
    def test_list_and_filter(self, client, admin_headers):
        resp = client.get("/api/accounts?role=Admin&sort=name&direction=asc", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["accounts"][0]["email"] == "admin@example.com"

    def test_bad_sort_is_400(self, client, admin_headers):
        resp = client.get("/api/accounts?sort=email", headers=admin_headers)
        assert resp.status_code == 400
        assert "sort" in resp.json["errors"]

    def test_create_validation_errors_are_field_keyed(self, client, admin_headers):
        resp = client.post(
            "/api/accounts",
            json={"name": "", "email": "a@b.com", "branch": "Main", "role": "Staff", "status": "active"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["errors"] == {"name": "Name is required"}

    def test_create_is_persisted_and_attributed(self, client, admin_headers):
        resp = client.post("/api/accounts", json=account_payload(status="pending"), headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["local_only"] is False
        assert resp.json["audit_entry"]["actor_email"] == "admin@example.com"

        account_id = resp.json["account"]["id"]
        assert db.session.get(Account, account_id).email == "jane@example.com"
        entry = db.session.query(AccountAuditEntry).order_by(AccountAuditEntry.id.desc()).first()
        assert entry.target_id == account_id
        assert entry.action == "create"

    def test_get_unknown_account_is_404(self, client, admin_headers):
        resp = client.get("/api/accounts/missing", headers=admin_headers)
        assert resp.status_code == 404

    def test_transition_requires_confirmation(self, client, seeded, admin_headers):
        staff_id = seeded["staff"].id

        resp = client.post(f"/api/accounts/{staff_id}/suspend", json={}, headers=admin_headers)
        assert resp.status_code == 428
        assert resp.json["confirmation"].startswith("Suspend the account of Sam Staff")
        assert get_governance().accounts.get(staff_id).status == "active"

        resp = client.post(f"/api/accounts/{staff_id}/suspend", json={"confirm": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["account"]["status"] == "suspended"
        assert db.session.get(Account, staff_id).status == "suspended"

    def test_deactivate_suspended_account(self, client, seeded, admin_headers):
        staff_id = seeded["staff"].id
        get_governance().change_status(staff_id, "suspend", actor=None)

        resp = client.post(f"/api/accounts/{staff_id}/deactivate", json={}, headers=admin_headers)
        assert resp.status_code == 428
        assert "from suspended to inactive" in resp.json["confirmation"]

        resp = client.post(f"/api/accounts/{staff_id}/deactivate", json={"confirm": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert db.session.get(Account, staff_id).status == "inactive"

    def test_update_and_delete(self, client, seeded, admin_headers):
        staff_id = seeded["staff"].id
        resp = client.put(
            f"/api/accounts/{staff_id}",
            json=account_payload(name="Sam Staff", email="staff@example.com", branch="North"),
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["account"]["branch"] == "North"

        resp = client.delete(f"/api/accounts/{staff_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert db.session.get(Account, staff_id) is None

    def test_export_csv(self, client, admin_headers):
        resp = client.get("/api/accounts/export?sort=name&direction=asc", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
        assert [r[1] for r in rows[1:]] == ["admin@example.com", "staff@example.com"]

    def test_password_reset_is_queued(self, client, seeded, admin_headers):
        resp = client.post(f"/api/accounts/{seeded['staff'].id}/password-reset", headers=admin_headers)
        assert resp.status_code == 200
        queued = db.session.query(EmailOutbox).all()
        assert [(e.kind, e.recipient, e.requested_by) for e in queued] == [
            ("password_reset", "staff@example.com", "admin@example.com")
        ]

    def test_resend_verification_requires_pending(self, client, seeded, admin_headers):
        resp = client.post(f"/api/accounts/{seeded['staff'].id}/resend-verification", headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# ROLES / AUDIT / SYSTEM
# =============================================================================


class TestRoles:
    def test_last_admin_delete_is_409(self, client, admin_headers):
        admin_role = get_governance().roles.admin_roles()[0]
        resp = client.delete(f"/api/roles/{admin_role.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert "last global Admin role" in resp.json["error"]

    def test_create_and_preview(self, client, admin_headers):
        resp = client.post(
            "/api/roles",
            json={"name": "Auditor", "scope": "branch", "permissions": {"reports": ["read", "export"]}},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        role_id = resp.json["role"]["id"]
        assert resp.json["role"]["users_count"] == 0

        resp = client.get(f"/api/roles/{role_id}/permissions", headers=admin_headers)
        assert resp.json["granted_count"] == 2

    def test_duplicate_role_name_is_400(self, client, admin_headers):
        resp = client.post("/api/roles", json={"name": "staff", "scope": "branch"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "name" in resp.json["errors"]

    def test_assigned_role_delete_is_400(self, client, seeded, admin_headers):
        staff_role = get_governance().roles.find_by_name("Staff")
        resp = client.delete(f"/api/roles/{staff_role.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["errors"]["form"].startswith("Role is assigned to 1 account")
        assert get_governance().roles.find_by_name("Staff") is not None

    def test_list_roles(self, client, admin_headers):
        resp = client.get("/api/roles?sort=name&direction=asc", headers=admin_headers)
        assert [r["name"] for r in resp.json["roles"]] == ["Admin", "Manager", "Staff"]


class TestAuditAndSystem:
    def test_activity_feed(self, client, seeded, admin_headers):
        client.post(f"/api/accounts/{seeded['staff'].id}/suspend", json={"confirm": True}, headers=admin_headers)
        resp = client.get("/api/audit?actor=admin@example.com", headers=admin_headers)
        assert resp.status_code == 200
        assert [e["action"] for e in resp.json["entries"]] == ["suspend"]

    def test_bad_limit(self, client, admin_headers):
        resp = client.get("/api/audit?limit=0", headers=admin_headers)
        assert resp.status_code == 400

    def test_registry_reloads_from_database(self, app, seeded):
        reset_governance()
        facade = get_governance()
        assert facade.accounts.find_by_email("staff@example.com").id == seeded["staff"].id
        assert len(facade.roles.admin_roles()) == 1

    def test_health(self, client, seeded):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["governance"]["details"]["global_admin_roles"] == 1

    @pytest.mark.parametrize("origin,allowed", [
        ("http://localhost:5173", True),
        ("http://evil.example", False),
    ])
    def test_cors_origins_come_from_config(self, client, origin, allowed):
        resp = client.get("/health", headers={"Origin": origin})
        assert (resp.headers.get("Access-Control-Allow-Origin") == origin) is allowed
