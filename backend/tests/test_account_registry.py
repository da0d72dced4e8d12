"""
AccountRegistry tests.

Verifies:
- Field validation happens before any mutation
- The status state machine (targets, self-moves, no return to pending)
- Every transition writes one audit entry, even when repeated
- Failed remote writes still change the local registry and flag the audit
- Staff links and effective last login
"""

from datetime import datetime

import pytest

from backoffice.services.account_service import ALLOWED_MOVES, can_move
from backoffice.validation import NotFound, ValidationError

from conftest import account_payload, account_row, build_facade


class TestCreateValidation:
    def test_missing_name_is_rejected(self, governance, stores):
        """Scenario C."""
        with pytest.raises(ValidationError) as exc:
            governance.create_account(
                {"name": "", "email": "a@b.com", "branch": "Main", "role": "Staff", "status": "active"},
                actor="admin@example.com",
            )
        assert exc.value.errors == {"name": "Name is required"}
        assert governance.accounts.all() == []
        assert stores["accounts"].calls == ["select"]
        assert len(governance.audit) == 0

    def test_all_field_errors_reported_together(self, governance):
        with pytest.raises(ValidationError) as exc:
            governance.create_account({"name": "X", "email": "not-an-email", "role": "", "status": "active"},
                                      actor=None)
        assert exc.value.errors == {
            "email": "Enter a valid email address",
            "branch": "Branch is required",
            "role": "Role is required",
        }

    def test_unknown_role(self, governance):
        with pytest.raises(ValidationError) as exc:
            governance.create_account(account_payload(role="Janitor"), actor=None)
        assert exc.value.errors == {"role": "Unknown role: Janitor"}

    def test_role_name_is_canonicalized(self, governance):
        account = governance.create_account(account_payload(role="staff"), actor=None).record
        assert account.role == "Staff"

    def test_duplicate_email_case_insensitive(self, governance):
        governance.create_account(account_payload(), actor=None)
        with pytest.raises(ValidationError) as exc:
            governance.create_account(account_payload(email="JANE@example.com"), actor=None)
        assert exc.value.errors["email"] == "An account with this email already exists"

    def test_unknown_fields_are_rejected(self, governance):
        with pytest.raises(ValidationError) as exc:
            governance.create_account(account_payload(last_login_at="2024-01-01"), actor=None)
        assert exc.value.errors == {"last_login_at": "Field not allowed"}

    def test_linked_user_must_resolve_to_a_user_account(self, governance):
        with pytest.raises(ValidationError) as exc:
            governance.create_account(
                account_payload(account_type="staff", linked_user_id="nope"), actor=None
            )
        assert exc.value.errors == {"linked_user_id": "Linked user account not found"}

    def test_only_staff_can_link(self, governance):
        user = governance.create_account(account_payload(), actor=None).record
        with pytest.raises(ValidationError) as exc:
            governance.create_account(
                account_payload(email="x@example.com", linked_user_id=user.id), actor=None
            )
        assert exc.value.errors == {"linked_user_id": "Only staff accounts can link to a user account"}


class TestCreate:
    def test_create_persists_and_audits(self, governance, stores):
        result = governance.create_account(account_payload(status="pending"), actor="admin@example.com")

        assert not result.local_only
        assert result.record.id in stores["accounts"].rows
        entry = result.audit_entry
        assert entry.action == "create"
        assert entry.actor_email == "admin@example.com"
        assert entry.target_email == "jane@example.com"
        assert entry.details == {"role": "Staff", "status": "pending"}
        assert entry.id is not None

    def test_remote_failure_applies_locally(self, governance, stores):
        """Scenario E."""
        stores["accounts"].fail = True

        result = governance.create_account(account_payload(), actor="admin@example.com")

        assert result.local_only
        assert result.record.id.startswith("u_")
        assert governance.accounts.get(result.record.id) == result.record
        assert result.audit_entry.details["localOnly"] is True
        assert stores["accounts"].rows == {}


class TestTransitions:
    def _account(self, governance, status):
        return governance.create_account(account_payload(status=status), actor=None).record

    def test_suspend_pending_then_reactivate(self, governance):
        """Scenario D."""
        account = self._account(governance, "pending")

        suspended = governance.accounts.suspend(account, actor="admin@example.com").record
        assert suspended.status == "suspended"

        active = governance.accounts.activate(account.id, actor="admin@example.com").record
        assert active.status == "active"

    @pytest.mark.parametrize("status", ["active", "inactive", "pending", "suspended"])
    def test_activate_and_suspend_from_any_state(self, governance, status):
        account = self._account(governance, status)
        assert governance.change_status(account.id, "activate", actor=None).record.status == "active"
        assert governance.change_status(account.id, "suspend", actor=None).record.status == "suspended"

    @pytest.mark.parametrize("status", ["active", "inactive", "pending", "suspended"])
    def test_deactivate_target(self, governance, status):
        account = self._account(governance, status)
        result = governance.accounts.deactivate(account, actor=None)
        assert result.record.status == "inactive"
        assert result.audit_entry.details == {"previous_status": status}

    def test_deactivate_clears_suspension_with_audit(self, governance, stores):
        account = self._account(governance, "suspended")

        result = governance.accounts.deactivate(account, actor="admin@example.com")

        assert result.record.status == "inactive"
        assert stores["accounts"].rows[account.id]["status"] == "inactive"
        assert (result.audit_entry.action, result.audit_entry.actor_email) == ("deactivate", "admin@example.com")
        assert result.audit_entry.details == {"previous_status": "suspended"}

    def test_deactivate_twice_is_idempotent_but_audited_twice(self, governance, stores):
        account = self._account(governance, "active")

        first = governance.accounts.deactivate(account, actor="admin@example.com")
        second = governance.accounts.deactivate(account, actor="admin@example.com")

        assert first.record == second.record
        assert stores["accounts"].rows[account.id]["status"] == "inactive"
        deactivations = [e for e in governance.audit.entries() if e.action == "deactivate"]
        assert len(deactivations) == 2
        assert deactivations[1].details == {"previous_status": "inactive"}

    def test_transition_on_unknown_account(self, governance):
        with pytest.raises(NotFound):
            governance.accounts.activate("missing", actor=None)

    def test_remote_failure_still_transitions(self, governance, stores):
        account = self._account(governance, "active")
        stores["accounts"].fail = True

        result = governance.accounts.suspend(account, actor=None)

        assert result.local_only
        assert governance.accounts.get(account.id).status == "suspended"
        assert result.audit_entry.details == {"previous_status": "active", "localOnly": True}

    def test_move_table(self):
        assert ALLOWED_MOVES["suspended"] == {"active", "inactive"}
        assert can_move("suspended", "suspended")
        assert can_move("suspended", "inactive")
        assert can_move("pending", "inactive")
        assert can_move("pending", "pending")
        assert not any(can_move(status, "pending") for status in ("active", "inactive", "suspended"))


class TestUpdateAndDelete:
    def test_update_replaces_fields_and_keeps_created_at(self, governance, stores):
        account = governance.create_account(account_payload(), actor=None).record

        updated = governance.update_account(
            account.id, account_payload(name="Jane Q. Doe", branch="North"), actor="admin@example.com"
        ).record

        assert updated.name == "Jane Q. Doe"
        assert updated.branch == "North"
        assert updated.created_at == account.created_at
        assert stores["accounts"].rows[account.id]["branch"] == "North"

    def test_update_may_keep_own_email(self, governance):
        account = governance.create_account(account_payload(), actor=None).record
        governance.update_account(account.id, account_payload(email="JANE@example.com"), actor=None)
        assert governance.accounts.get(account.id).email == "JANE@example.com"

    def test_update_status_follows_move_table(self, governance):
        account = governance.create_account(account_payload(status="suspended"), actor=None).record
        with pytest.raises(ValidationError) as exc:
            governance.update_account(account.id, account_payload(status="pending"), actor=None)
        assert exc.value.errors == {"status": "Cannot change status from suspended to pending"}

        updated = governance.update_account(account.id, account_payload(status="inactive"), actor=None)
        assert updated.record.status == "inactive"

    def test_delete_removes_and_audits(self, governance, stores):
        account = governance.create_account(account_payload(), actor=None).record

        result = governance.delete_account(account.id, actor="admin@example.com")

        assert result.audit_entry.action == "delete"
        assert result.audit_entry.target_email == account.email
        assert account.id not in stores["accounts"].rows
        with pytest.raises(NotFound):
            governance.accounts.get(account.id)

    def test_delete_local_only(self, governance, stores):
        account = governance.create_account(account_payload(), actor=None).record
        stores["accounts"].fail = True

        result = governance.delete_account(account.id, actor=None)

        assert result.local_only
        assert governance.accounts.all() == []
        assert account.id in stores["accounts"].rows
        assert result.audit_entry.details == {"localOnly": True}

    def test_unknown_id(self, governance):
        with pytest.raises(NotFound):
            governance.update_account("missing", account_payload(), actor=None)
        with pytest.raises(NotFound):
            governance.delete_account("missing", actor=None)


class TestLinkedUsers:
    @pytest.fixture
    def linked(self, stores, notifier):
        stores["accounts"].rows.update({
            "u1": account_row("u1", "Una User", "una@example.com",
                              last_login_at=datetime(2024, 3, 1, 9, 30)),
            "s1": account_row("s1", "Stan Staff", "stan@example.com", account_type="staff",
                              linked_user_id="u1"),
            "s2": account_row("s2", "Dee Dangling", "dee@example.com", account_type="staff",
                              linked_user_id="gone"),
        })
        return build_facade(stores, notifier)

    def test_staff_uses_linked_user_last_login(self, linked):
        staff = linked.accounts.get("s1")
        assert staff.last_login_at is None
        assert linked.accounts.effective_last_login(staff) == datetime(2024, 3, 1, 9, 30)

    def test_dangling_link_reads_as_absent(self, linked):
        staff = linked.accounts.get("s2")
        assert linked.accounts.linked_user(staff) is None
        assert linked.accounts.effective_last_login(staff) is None

    def test_deleting_linked_user_leaves_link_dangling(self, linked):
        linked.delete_account("u1", actor=None)
        staff = linked.accounts.get("s1")
        assert staff.linked_user_id == "u1"
        assert linked.accounts.linked_user(staff) is None
