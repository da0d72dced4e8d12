# Overview: Role registry; CRUD over roles guarded by the last-global-Admin rule.

"""
RoleRegistry

INVARIANT: at least one role named "Admin" (case-insensitive) with scope
"global" exists at all times.

- Every update or delete that would take a qualifying role out of the
  qualifying set first counts the OTHER qualifying roles. If there are none,
  the mutation is rejected with LastAdminGuard and nothing changes.
- Creating a role is never blocked by the guard.
- load() bootstraps the default Admin role when the store yields none, so
  the invariant holds from the first call.

Accounts reference their role by name. A role that still has accounts
assigned cannot be deleted or renamed (ValidationError); reassign the
accounts first. The count comes from the account registry through
track_assignments(); a registry with no tracker sees no assignments.

Role mutations are audited like account mutations (target_type="role").
The admin screens this replaces audited accounts only; role changes are
privileged too and share the same trail.

Remote writes follow the account policy: one attempt, and on failure the
change is applied locally and audited with {"localOnly": true}.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable, Optional

from backoffice.time_utils import utcnow
from ..permissions import DEFAULT_ROLES, PermissionMatrix, UnknownPermissionKey, get_default_role
from ..validation import (
    LastAdminGuard,
    NotFound,
    ValidationError,
    is_admin_role,
    normalize_role_form,
    validate_role_form,
)
from .audit_service import AuditTrail
from .outcomes import MutationResult, attempt_write, with_outcome_flag
from .remote_store import RemoteStoreError, TableStore
from .schemas import RoleRecord, SchemaError


logger = logging.getLogger(__name__)


LAST_ADMIN_UPDATE_MESSAGE = (
    "Cannot rename or change scope of the last global Admin role. "
    "Create another global Admin role first."
)
LAST_ADMIN_DELETE_MESSAGE = (
    "Cannot delete the last global Admin role. Create another global Admin role first."
)


def _assigned_message(count: int, verb: str) -> str:
    noun = "account" if count == 1 else "accounts"
    return f"Role is assigned to {count} {noun}. Reassign them before {verb} it."


def _local_role_id() -> str:
    return f"r_{uuid.uuid4().hex[:8]}"


class RoleRegistry:
    def __init__(self, store: TableStore, audit: AuditTrail):
        self._store = store
        self._audit = audit
        self._roles: dict[str, RoleRecord] = {}
        self._assigned: Callable[[RoleRecord], int] = lambda role: 0

    def track_assignments(self, counter: Callable[[RoleRecord], int]) -> None:
        """Install the per-role account counter used by the rename and delete checks."""
        self._assigned = counter

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, *, bootstrap: bool = True) -> int:
        try:
            rows = self._store.select()
        except RemoteStoreError as exc:
            logger.warning("Roles unavailable from the remote store: %s", exc)
            rows = []

        roles: dict[str, RoleRecord] = {}
        for row in rows:
            try:
                role = RoleRecord.from_row(row)
            except SchemaError as exc:
                logger.warning("Skipping role row %s: %s", row.get("id"), exc)
                continue
            roles[role.id] = role
        self._roles = roles

        if bootstrap and not self.admin_roles():
            logger.warning("No global Admin role found, bootstrapping the default Admin role")
            self._create_default("Admin", actor=None)

        return len(self._roles)

    def seed_defaults(self, *, actor: Optional[str] = None) -> list[RoleRecord]:
        """Create any DEFAULT_ROLES not already present in their scope. Idempotent."""
        created = []
        for name, _description, scope, _grants in DEFAULT_ROLES:
            if self.find_by_name(name, scope=scope) is None:
                created.append(self._create_default(name, actor=actor).record)
        return created

    def _create_default(self, name: str, *, actor: Optional[str]) -> MutationResult:
        name, description, scope, grants = get_default_role(name)
        role = RoleRecord(
            id="",
            name=name,
            description=description,
            scope=scope,
            permissions=PermissionMatrix(grants),
            created_at=utcnow(),
            is_default=True,
        )
        return self._insert(role, actor=actor)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> list[RoleRecord]:
        return list(self._roles.values())

    def get(self, role_id: str) -> RoleRecord:
        role = self._roles.get(role_id)
        if role is None:
            raise NotFound(f"Role {role_id} not found")
        return role

    def find_by_name(self, name: str, *, scope: Optional[str] = None) -> Optional[RoleRecord]:
        """First role with this name (case-insensitive), optionally within one scope."""
        wanted = (name or "").strip().lower()
        for role in self._roles.values():
            if role.name.strip().lower() == wanted and (scope is None or role.scope == scope):
                return role
        return None

    def names(self) -> list[str]:
        return [role.name for role in self._roles.values()]

    def admin_roles(self) -> list[RoleRecord]:
        return [r for r in self._roles.values() if is_admin_role(r.name, r.scope)]

    def is_last_global_admin(self, role_id: str) -> bool:
        role = self.get(role_id)
        if not is_admin_role(role.name, role.scope):
            return False
        return not any(r.id != role_id for r in self.admin_roles())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _validate(self, payload: dict, *, role_id: Optional[str] = None) -> tuple[dict, PermissionMatrix]:
        form = normalize_role_form(payload)
        errors = validate_role_form(form)

        permissions = PermissionMatrix.empty()
        if "permissions" not in errors:
            try:
                permissions = PermissionMatrix.from_dict(form["permissions"])
            except UnknownPermissionKey as exc:
                errors["permissions"] = str(exc)

        if "name" not in errors and "scope" not in errors:
            clash = self.find_by_name(form["name"], scope=form["scope"])
            if clash is not None and clash.id != role_id:
                errors["name"] = f"A role named '{clash.name}' already exists in this scope"

        if errors:
            raise ValidationError(errors)
        return form, permissions

    def _insert(self, role: RoleRecord, *, actor: Optional[str]) -> MutationResult:
        outcome, new_id = attempt_write(
            lambda: self._store.insert(role.to_row()),
            description=f"Create role {role.name}",
        )
        role = replace(role, id=new_id if not outcome.local_only else _local_role_id())
        self._roles[role.id] = role

        entry = self._audit.record(
            actor=actor,
            action="create",
            target_type="role",
            target_id=role.id,
            details=with_outcome_flag({"role": role.name, "scope": role.scope}, outcome),
        )
        return MutationResult(role, outcome, entry)

    def create(self, payload: dict, *, actor: Optional[str]) -> MutationResult:
        form, permissions = self._validate(payload)
        role = RoleRecord(
            id="",
            name=form["name"],
            description=form["description"],
            scope=form["scope"],
            permissions=permissions,
            created_at=utcnow(),
        )
        return self._insert(role, actor=actor)

    def update(self, role_id: str, payload: dict, *, actor: Optional[str]) -> MutationResult:
        current = self.get(role_id)
        form, permissions = self._validate(payload, role_id=role_id)

        demotes_admin = (
            is_admin_role(current.name, current.scope)
            and not is_admin_role(form["name"], form["scope"])
        )
        if demotes_admin and self.is_last_global_admin(role_id):
            raise LastAdminGuard(LAST_ADMIN_UPDATE_MESSAGE)

        if form["name"].strip().lower() != current.name.strip().lower():
            assigned = self._assigned(current)
            if assigned:
                raise ValidationError({"name": _assigned_message(assigned, "renaming")})

        updated = replace(
            current,
            name=form["name"],
            description=form["description"],
            scope=form["scope"],
            permissions=permissions,
        )
        patch = updated.to_row()
        patch.pop("created_at")
        patch.pop("is_default")

        outcome, _ = attempt_write(
            lambda: self._store.update(role_id, patch),
            description=f"Update role {role_id}",
        )
        self._roles[role_id] = updated

        entry = self._audit.record(
            actor=actor,
            action="update",
            target_type="role",
            target_id=role_id,
            details=with_outcome_flag({"role": updated.name, "scope": updated.scope}, outcome),
        )
        return MutationResult(updated, outcome, entry)

    def delete(self, role_id: str, *, actor: Optional[str]) -> MutationResult:
        role = self.get(role_id)
        if self.is_last_global_admin(role_id):
            raise LastAdminGuard(LAST_ADMIN_DELETE_MESSAGE)
        assigned = self._assigned(role)
        if assigned:
            raise ValidationError({"form": _assigned_message(assigned, "deleting")})

        outcome, _ = attempt_write(
            lambda: self._store.delete(role_id),
            description=f"Delete role {role_id}",
        )
        del self._roles[role_id]

        entry = self._audit.record(
            actor=actor,
            action="delete",
            target_type="role",
            target_id=role_id,
            details=with_outcome_flag({"role": role.name, "scope": role.scope}, outcome),
        )
        return MutationResult(role, outcome, entry)
