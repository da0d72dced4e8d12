# Overview: Account registry; CRUD and the account status state machine.

"""
AccountRegistry

STATUS STATE MACHINE:

    pending -> active | inactive | suspended
    active, inactive, suspended: any of the three, in either direction
    nothing returns to pending

Moving to the state an account is already in is allowed; it changes nothing
and is still audited. No state is terminal. Every transition action is
valid from every state, so ALLOWED_MOVES only constrains status edits made
through the account form. A suspension is cleared only by an explicit
activate or deactivate (or form edit), each audited.

Transitions (activate / deactivate / suspend) trust the caller to have
confirmed the action with the user. Each one:
  1. attempts the remote write once,
  2. appends an audit entry whether or not (1) succeeded, flagged
     {"localOnly": true} when it did not,
  3. updates the in-memory registry. A failed remote write never rolls
     back the local view.

Concurrent sessions editing the same account are last-writer-wins. There
is no version check and no merge.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional, Union

from backoffice.time_utils import utcnow
from ..validation import (
    NotFound,
    ValidationError,
    normalize_account_form,
    validate_account_form,
)
from .audit_service import AuditTrail
from .outcomes import MutationResult, attempt_write, with_outcome_flag
from .remote_store import RemoteStoreError, TableStore
from .role_service import RoleRegistry
from .schemas import AccountRecord, RoleRecord, SchemaError


logger = logging.getLogger(__name__)


# action -> target status
TRANSITIONS = {
    "activate": "active",
    "deactivate": "inactive",
    "suspend": "suspended",
}

ALLOWED_MOVES = {
    "pending": {"active", "inactive", "suspended"},
    "active": {"inactive", "suspended"},
    "inactive": {"active", "suspended"},
    "suspended": {"active", "inactive"},
}


def can_move(current: str, target: str) -> bool:
    return current == target or target in ALLOWED_MOVES.get(current, set())


def _local_account_id() -> str:
    return f"u_{uuid.uuid4().hex[:8]}"


AccountRef = Union[AccountRecord, str]


class AccountRegistry:
    def __init__(self, store: TableStore, audit: AuditTrail, roles: RoleRegistry):
        self._store = store
        self._audit = audit
        self._roles = roles
        self._accounts: dict[str, AccountRecord] = {}

    def load(self) -> int:
        """
        Replace the registry with the store's rows.

        If the store cannot be read the registry keeps what it has; rows that
        fail conversion are skipped with a warning.
        """
        try:
            rows = self._store.select()
        except RemoteStoreError as exc:
            logger.warning("Accounts unavailable from the remote store: %s", exc)
            return len(self._accounts)

        accounts: dict[str, AccountRecord] = {}
        for row in rows:
            try:
                account = AccountRecord.from_row(row)
            except SchemaError as exc:
                logger.warning("Skipping account row %s: %s", row.get("id"), exc)
                continue
            accounts[account.id] = account
        self._accounts = accounts
        return len(accounts)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> list[AccountRecord]:
        return list(self._accounts.values())

    def get(self, account: AccountRef) -> AccountRecord:
        account_id = account.id if isinstance(account, AccountRecord) else account
        found = self._accounts.get(account_id)
        if found is None:
            raise NotFound(f"Account {account_id} not found")
        return found

    def find_by_email(self, email: str) -> Optional[AccountRecord]:
        wanted = (email or "").strip().lower()
        for account in self._accounts.values():
            if account.email.lower() == wanted:
                return account
        return None

    def linked_user(self, account: AccountRecord) -> Optional[AccountRecord]:
        """The user account a staff account logs in with; a dangling link reads as None."""
        if not account.linked_user_id:
            return None
        linked = self._accounts.get(account.linked_user_id)
        if linked is None or linked.account_type != "user":
            return None
        return linked

    def effective_last_login(self, account: AccountRecord) -> Optional[datetime]:
        if account.last_login_at is not None:
            return account.last_login_at
        linked = self.linked_user(account)
        return linked.last_login_at if linked else None

    def role_of(self, account: AccountRecord) -> Optional[RoleRecord]:
        """The role an account's permissions resolve to, or None if its name matches no role."""
        return self._roles.find_by_name(account.role)

    def count_by_role(self, role: RoleRecord) -> int:
        """
        Accounts whose role name resolves to this role.

        Role names are unique per scope only. When a global and a branch role
        share a name, accounts resolve to the first one (see
        RoleRegistry.find_by_name) and the other counts zero.
        """
        wanted = role.name.strip().lower()
        count = 0
        for account in self._accounts.values():
            if account.role.strip().lower() != wanted:
                continue
            resolved = self.role_of(account)
            if resolved is not None and resolved.id == role.id:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    def _validate(self, payload: dict, *, current: Optional[AccountRecord] = None) -> dict:
        form = normalize_account_form(payload)
        errors = validate_account_form(form)

        if "role" not in errors:
            role = self._roles.find_by_name(form["role"])
            if role is None:
                errors["role"] = f"Unknown role: {form['role']}"
            else:
                form["role"] = role.name

        if "email" not in errors:
            other = self.find_by_email(form["email"])
            if other is not None and (current is None or other.id != current.id):
                errors["email"] = "An account with this email already exists"

        if form["linked_user_id"] and "linked_user_id" not in errors:
            linked = self._accounts.get(form["linked_user_id"])
            is_self = current is not None and form["linked_user_id"] == current.id
            if linked is None or linked.account_type != "user" or is_self:
                errors["linked_user_id"] = "Linked user account not found"

        if current is not None and "status" not in errors:
            if not can_move(current.status, form["status"]):
                errors["status"] = f"Cannot change status from {current.status} to {form['status']}"

        if errors:
            raise ValidationError(errors)
        return form

    def create(self, payload: dict, *, actor: Optional[str]) -> MutationResult:
        form = self._validate(payload)
        account = AccountRecord(id="", created_at=utcnow(), **form)

        outcome, new_id = attempt_write(
            lambda: self._store.insert(account.to_row()),
            description=f"Create account {account.email}",
        )
        account = replace(account, id=new_id if not outcome.local_only else _local_account_id())
        self._accounts[account.id] = account

        entry = self._audit.record(
            actor=actor,
            action="create",
            target_type="account",
            target_id=account.id,
            target_email=account.email,
            details=with_outcome_flag({"role": account.role, "status": account.status}, outcome),
        )
        return MutationResult(account, outcome, entry)

    def update(self, account_id: str, payload: dict, *, actor: Optional[str]) -> MutationResult:
        current = self.get(account_id)
        form = self._validate(payload, current=current)
        updated = replace(current, **form)

        patch = updated.to_row()
        patch.pop("created_at")
        outcome, _ = attempt_write(
            lambda: self._store.update(current.id, patch),
            description=f"Update account {current.id}",
        )
        self._accounts[current.id] = updated

        entry = self._audit.record(
            actor=actor,
            action="update",
            target_type="account",
            target_id=updated.id,
            target_email=updated.email,
            details=with_outcome_flag({"role": updated.role, "status": updated.status}, outcome),
        )
        return MutationResult(updated, outcome, entry)

    def delete(self, account_id: str, *, actor: Optional[str]) -> MutationResult:
        # Deleting an account never touches roles, so no Admin-role check here.
        account = self.get(account_id)

        outcome, _ = attempt_write(
            lambda: self._store.delete(account.id),
            description=f"Delete account {account.id}",
        )
        del self._accounts[account.id]

        entry = self._audit.record(
            actor=actor,
            action="delete",
            target_type="account",
            target_id=account.id,
            target_email=account.email,
            details=with_outcome_flag({}, outcome),
        )
        return MutationResult(account, outcome, entry)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def activate(self, account: AccountRef, *, actor: Optional[str]) -> MutationResult:
        return self._transition(account, "activate", actor=actor)

    def deactivate(self, account: AccountRef, *, actor: Optional[str]) -> MutationResult:
        return self._transition(account, "deactivate", actor=actor)

    def suspend(self, account: AccountRef, *, actor: Optional[str]) -> MutationResult:
        return self._transition(account, "suspend", actor=actor)

    def transition(self, account: AccountRef, action: str, *, actor: Optional[str]) -> MutationResult:
        if action not in TRANSITIONS:
            raise ValueError(f"Unknown status action: {action!r}")
        return self._transition(account, action, actor=actor)

    def _transition(self, account: AccountRef, action: str, *, actor: Optional[str]) -> MutationResult:
        current = self.get(account)
        target = TRANSITIONS[action]

        outcome, _ = attempt_write(
            lambda: self._store.update(current.id, {"status": target}),
            description=f"{action.capitalize()} account {current.id}",
        )
        updated = replace(current, status=target)
        self._accounts[current.id] = updated

        entry = self._audit.record(
            actor=actor,
            action=action,
            target_type="account",
            target_id=updated.id,
            target_email=updated.email,
            details=with_outcome_flag({"previous_status": current.status}, outcome),
        )
        return MutationResult(updated, outcome, entry)
