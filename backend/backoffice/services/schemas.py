# Overview: Typed records for rows crossing the remote-store boundary.

"""
Every row read from the store is converted here before it reaches a
registry, and every write is built from a record's to_row(). Nothing
untyped flows past the registries.

Conversion is strict on the fields the governance rules depend on (status,
scope, account type, permission keys) and lenient on presentation fields.
A row that cannot be converted raises SchemaError; loaders skip it with a
warning rather than guessing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..permissions import PermissionMatrix, UnknownPermissionKey
from ..time_utils import coerce_datetime, to_utc_z
from ..validation import ACCOUNT_STATUSES, ACCOUNT_TYPES, ROLE_SCOPES


AUDIT_ACTIONS = ("create", "update", "delete", "activate", "deactivate", "suspend")
AUDIT_TARGET_TYPES = ("account", "role")


class SchemaError(ValueError):
    """A store row does not fit the record shape."""


def _text(row: dict, key: str, *, required: bool = False) -> Optional[str]:
    value = row.get(key)
    if value is None or str(value).strip() == "":
        if required:
            raise SchemaError(f"{key} is missing")
        return None
    return str(value).strip()


def _choice(row: dict, key: str, choices: tuple, *, default: Optional[str] = None) -> str:
    value = _text(row, key) or default
    if value is None:
        raise SchemaError(f"{key} is missing")
    value = value.lower()
    if value not in choices:
        raise SchemaError(f"{key} has unexpected value {value!r}")
    return value


def _datetime(row: dict, key: str, *, required: bool = False) -> Optional[datetime]:
    try:
        value = coerce_datetime(row.get(key))
    except ValueError as exc:
        raise SchemaError(f"{key} is not a datetime") from exc
    if value is None and required:
        raise SchemaError(f"{key} is missing")
    return value


@dataclass(frozen=True)
class AccountRecord:
    id: str
    name: str
    email: str
    role: str
    status: str
    branch: str
    account_type: str
    created_at: datetime
    last_login_at: Optional[datetime] = None
    linked_user_id: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    employee_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "AccountRecord":
        email = _text(row, "email", required=True)
        return cls(
            id=_text(row, "id", required=True),
            name=_text(row, "name") or email,
            email=email,
            role=_text(row, "role", required=True),
            status=_choice(row, "status", ACCOUNT_STATUSES),
            branch=_text(row, "branch") or "",
            account_type=_choice(row, "account_type", ACCOUNT_TYPES, default="user"),
            created_at=_datetime(row, "created_at", required=True),
            last_login_at=_datetime(row, "last_login_at"),
            linked_user_id=_text(row, "linked_user_id"),
            phone=_text(row, "phone"),
            position=_text(row, "position"),
            department=_text(row, "department"),
            employee_id=_text(row, "employee_id"),
        )

    def to_row(self) -> dict:
        """Store row; id is left to the store on insert."""
        return {
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "branch": self.branch,
            "account_type": self.account_type,
            "linked_user_id": self.linked_user_id,
            "phone": self.phone,
            "position": self.position,
            "department": self.department,
            "employee_id": self.employee_id,
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "branch": self.branch,
            "account_type": self.account_type,
            "linked_user_id": self.linked_user_id,
            "phone": self.phone,
            "position": self.position,
            "department": self.department,
            "employee_id": self.employee_id,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


@dataclass(frozen=True)
class RoleRecord:
    id: str
    name: str
    scope: str
    permissions: PermissionMatrix
    created_at: datetime
    description: Optional[str] = None
    is_default: bool = False

    @classmethod
    def from_row(cls, row: dict) -> "RoleRecord":
        try:
            permissions = PermissionMatrix.from_dict(row.get("permissions") or {})
        except UnknownPermissionKey as exc:
            raise SchemaError(f"permissions: {exc}") from exc
        return cls(
            id=_text(row, "id", required=True),
            name=_text(row, "name", required=True),
            scope=_choice(row, "scope", ROLE_SCOPES),
            permissions=permissions,
            created_at=_datetime(row, "created_at", required=True),
            description=_text(row, "description"),
            is_default=bool(row.get("is_default") or False),
        )

    def to_row(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "permissions": self.permissions.to_dict(),
            "is_default": self.is_default,
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "permissions": self.permissions.to_dict(),
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
        }


@dataclass(frozen=True)
class AuditEntry:
    action: str
    target_type: str
    target_id: Optional[str]
    target_email: Optional[str]
    created_at: datetime
    actor_email: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    # None until the store has confirmed the append
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "AuditEntry":
        details = row.get("details") or {}
        if not isinstance(details, dict):
            raise SchemaError("details is not a mapping")
        return cls(
            id=_text(row, "id"),
            action=_choice(row, "action", AUDIT_ACTIONS),
            target_type=_choice(row, "target_type", AUDIT_TARGET_TYPES, default="account"),
            target_id=_text(row, "target_id"),
            target_email=_text(row, "target_email"),
            created_at=_datetime(row, "created_at", required=True),
            actor_email=_text(row, "actor_email"),
            details=dict(details),
        )

    @property
    def local_only(self) -> bool:
        return bool(self.details.get("localOnly"))

    def to_row(self) -> dict:
        return {
            "actor_email": self.actor_email,
            "action": self.action,
            "target_type": self.target_type,
            "target_email": self.target_email,
            "target_id": self.target_id,
            "details": dict(self.details),
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_email": self.actor_email,
            "action": self.action,
            "target_type": self.target_type,
            "target_email": self.target_email,
            "target_id": self.target_id,
            "details": dict(self.details),
            "created_at": to_utc_z(self.created_at),
        }
