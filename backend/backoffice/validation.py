from __future__ import annotations

import re
from typing import Any


ACCOUNT_STATUSES = ("active", "inactive", "suspended", "pending")
ACCOUNT_TYPES = ("user", "staff")
ROLE_SCOPES = ("global", "branch")

ADMIN_ROLE_NAME = "admin"

# Same shape check the admin screens always used: something@something.tld, no spaces
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ACCOUNT_FORM_FIELDS = {
    "name",
    "email",
    "role",
    "status",
    "branch",
    "account_type",
    "linked_user_id",
    "phone",
    "position",
    "department",
    "employee_id",
}

ROLE_FORM_FIELDS = {"name", "description", "scope", "permissions"}


class ValidationError(ValueError):
    """
    400-level input problem, keyed by form field.

    Raised before any mutation; callers render `errors` inline per field.
    """

    def __init__(self, errors: dict[str, str] | str):
        if isinstance(errors, str):
            errors = {"form": errors}
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class NotFound(LookupError):
    """Operation referenced an id that is not in the registry."""


class LastAdminGuard(ValueError):
    """Role mutation would leave the system without a global Admin role."""


def is_admin_role(name: str | None, scope: str | None) -> bool:
    return (name or "").strip().lower() == ADMIN_ROLE_NAME and scope == "global"


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_optional_text(value: Any) -> str | None:
    text = _to_text(value)
    return text or None


def _reject_unknown(payload: dict, allowed: set[str]) -> None:
    unknown = sorted(k for k in payload.keys() if k not in allowed)
    if unknown:
        raise ValidationError({k: "Field not allowed" for k in unknown})


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def normalize_account_form(payload: dict | None) -> dict:
    """
    Trim and default an account form.

    Returns a dict with every ACCOUNT_FORM_FIELDS key present. Only shape
    problems (non-dict, unknown keys) raise here; field rules live in
    validate_account_form so all field errors are reported together.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid form payload")
    _reject_unknown(payload, ACCOUNT_FORM_FIELDS)

    return {
        "name": _to_text(payload.get("name")),
        "email": _to_text(payload.get("email")),
        "role": _to_text(payload.get("role")),
        "status": _to_text(payload.get("status")).lower(),
        "branch": _to_text(payload.get("branch")),
        "account_type": _to_text(payload.get("account_type")).lower() or "user",
        "linked_user_id": _to_optional_text(payload.get("linked_user_id")),
        "phone": _to_optional_text(payload.get("phone")),
        "position": _to_optional_text(payload.get("position")),
        "department": _to_optional_text(payload.get("department")),
        "employee_id": _to_optional_text(payload.get("employee_id")),
    }


def validate_account_form(form: dict) -> dict[str, str]:
    """Field rules that need no registry lookups. Returns a field-keyed error map."""
    errors: dict[str, str] = {}
    if not form["name"]:
        errors["name"] = "Name is required"
    if not form["email"]:
        errors["email"] = "Email is required"
    elif not is_valid_email(form["email"]):
        errors["email"] = "Enter a valid email address"
    if not form["branch"]:
        errors["branch"] = "Branch is required"
    if not form["role"]:
        errors["role"] = "Role is required"
    if not form["status"]:
        errors["status"] = "Status is required"
    elif form["status"] not in ACCOUNT_STATUSES:
        errors["status"] = f"Status must be one of: {', '.join(ACCOUNT_STATUSES)}"
    if form["account_type"] not in ACCOUNT_TYPES:
        errors["account_type"] = "Account type must be user or staff"
    if form["linked_user_id"] and form["account_type"] != "staff":
        errors["linked_user_id"] = "Only staff accounts can link to a user account"
    return errors


def normalize_role_form(payload: dict | None) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid form payload")
    _reject_unknown(payload, ROLE_FORM_FIELDS)

    permissions = payload.get("permissions")
    if permissions is None:
        permissions = {}

    return {
        "name": _to_text(payload.get("name")),
        "description": _to_optional_text(payload.get("description")),
        "scope": _to_text(payload.get("scope")).lower(),
        "permissions": permissions,
    }


def validate_role_form(form: dict) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not form["name"]:
        errors["name"] = "Name is required"
    if not form["scope"]:
        errors["scope"] = "Scope is required"
    elif form["scope"] not in ROLE_SCOPES:
        errors["scope"] = "Scope must be global or branch"
    if not isinstance(form["permissions"], dict):
        errors["permissions"] = "Permissions must be a module to actions mapping"
    return errors
