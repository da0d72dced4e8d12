# Overview: Governance facade; the single entry point for routes and CLI commands.

"""
GovernanceFacade

Owns the three registries (audit, roles, accounts) and everything the
presentation layer asks of them: filtered/sorted views, CSV export, the
activity feed, confirmation prompts, and account emails. Mutations are
delegated to the registries with the caller's actor passed through
explicitly.

One facade lives per Flask app in app.extensions["governance"], built on
first use. Requests share it; there is no locking.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app

from backoffice.time_utils import to_utc_z
from ..models import Account, AccountAuditEntry, Role
from ..permissions import get_action_label, get_module_label
from ..validation import ACCOUNT_STATUSES, ACCOUNT_TYPES, ROLE_SCOPES, ValidationError
from .account_service import TRANSITIONS, AccountRegistry
from .audit_service import AuditTrail
from .notification_service import (
    KIND_PASSWORD_RESET,
    KIND_VERIFICATION,
    NotificationError,
    NotificationOutcome,
    NotificationSender,
    OutboxNotificationSender,
)
from .remote_store import SqlTableStore, TableStore
from .role_service import RoleRegistry
from .schemas import AUDIT_ACTIONS, AccountRecord, AuditEntry, RoleRecord


logger = logging.getLogger(__name__)


ACCOUNT_SORT_KEYS = ("name", "created_at", "last_login_at")
ROLE_SORT_KEYS = ("name", "created_at", "users_count")
SORT_DIRECTIONS = ("asc", "desc")

ACCOUNT_EXPORT_HEADER = ["Name", "Email", "Role", "Status", "Branch", "Created At", "Last Login"]
ROLE_EXPORT_HEADER = ["Name", "Description", "Scope", "Users", "Created"]

CONFIRMATION_VERBS = {
    "activate": "Activate",
    "deactivate": "Deactivate",
    "suspend": "Suspend",
}


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    # "all" is what the filter dropdowns send for no filter
    if not value or value.lower() == "all":
        return None
    return value


def _check_choice(field: str, value: Optional[str], choices: tuple) -> Optional[str]:
    value = _blank_to_none(value)
    if value is None:
        return None
    value = value.lower()
    if value not in choices:
        raise ValidationError({field: f"{field} must be one of: {', '.join(choices)}"})
    return value


@dataclass(frozen=True)
class AccountQuery:
    text: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    account_type: Optional[str] = None
    branch: Optional[str] = None
    sort: str = "created_at"
    direction: str = "desc"

    @classmethod
    def from_args(cls, args) -> "AccountQuery":
        """Build from request args / CLI options; raises ValidationError on bad values."""
        sort = (args.get("sort") or "created_at").strip()
        direction = (args.get("direction") or "desc").strip().lower()
        if sort not in ACCOUNT_SORT_KEYS:
            raise ValidationError({"sort": f"sort must be one of: {', '.join(ACCOUNT_SORT_KEYS)}"})
        if direction not in SORT_DIRECTIONS:
            raise ValidationError({"direction": "direction must be asc or desc"})
        return cls(
            text=_blank_to_none(args.get("q")),
            role=_blank_to_none(args.get("role")),
            status=_check_choice("status", args.get("status"), ACCOUNT_STATUSES),
            account_type=_check_choice("account_type", args.get("account_type"), ACCOUNT_TYPES),
            branch=_blank_to_none(args.get("branch")),
            sort=sort,
            direction=direction,
        )


@dataclass(frozen=True)
class RoleQuery:
    text: Optional[str] = None
    scope: Optional[str] = None
    sort: str = "created_at"
    direction: str = "desc"

    @classmethod
    def from_args(cls, args) -> "RoleQuery":
        sort = (args.get("sort") or "created_at").strip()
        direction = (args.get("direction") or "desc").strip().lower()
        if sort not in ROLE_SORT_KEYS:
            raise ValidationError({"sort": f"sort must be one of: {', '.join(ROLE_SORT_KEYS)}"})
        if direction not in SORT_DIRECTIONS:
            raise ValidationError({"direction": "direction must be asc or desc"})
        return cls(
            text=_blank_to_none(args.get("q")),
            scope=_check_choice("scope", args.get("scope"), ROLE_SCOPES),
            sort=sort,
            direction=direction,
        )


@dataclass(frozen=True)
class RoleView:
    """A role plus the number of accounts whose permissions resolve to it."""
    role: RoleRecord
    users_count: int

    def to_dict(self) -> dict:
        data = self.role.to_dict()
        data["users_count"] = self.users_count
        return data


def _to_csv(header: list[str], rows: list[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


class GovernanceFacade:
    def __init__(
        self,
        accounts: AccountRegistry,
        roles: RoleRegistry,
        audit: AuditTrail,
        notifier: NotificationSender,
    ):
        self.accounts = accounts
        self.roles = roles
        self.audit = audit
        self.notifier = notifier

    @classmethod
    def from_stores(
        cls,
        *,
        account_store: TableStore,
        role_store: TableStore,
        audit_store: TableStore,
        notifier: NotificationSender,
        display_limit: int = 50,
    ) -> "GovernanceFacade":
        audit = AuditTrail(audit_store, display_limit=display_limit)
        roles = RoleRegistry(role_store, audit)
        accounts = AccountRegistry(account_store, audit, roles)
        roles.track_assignments(accounts.count_by_role)
        return cls(accounts, roles, audit, notifier)

    def load(self) -> "GovernanceFacade":
        # Audit first so a role bootstrap lands after the persisted history.
        self.audit.load()
        self.roles.load()
        self.accounts.load()
        return self

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def account_to_dict(self, account: AccountRecord) -> dict:
        data = account.to_dict()
        data["last_login_at"] = to_utc_z(self.accounts.effective_last_login(account))
        return data

    def search_accounts(self, query: Optional[AccountQuery] = None) -> list[AccountRecord]:
        query = query or AccountQuery()
        text = query.text.lower() if query.text else None
        role = query.role.lower() if query.role else None
        branch = query.branch.lower() if query.branch else None

        def matches(account: AccountRecord) -> bool:
            if text and text not in account.name.lower() and text not in account.email.lower():
                return False
            if role and account.role.lower() != role:
                return False
            if query.status and account.status != query.status:
                return False
            if query.account_type and account.account_type != query.account_type:
                return False
            if branch and account.branch.lower() != branch:
                return False
            return True

        if query.sort == "name":
            key = lambda a: a.name.casefold()
        elif query.sort == "last_login_at":
            # Never-logged-in sorts as oldest
            def key(a):
                last = self.accounts.effective_last_login(a)
                return (last is not None, last or datetime.min)
        else:
            key = lambda a: a.created_at

        # sorted() is stable in both directions: equal keys keep registry order
        return sorted(
            (a for a in self.accounts.all() if matches(a)),
            key=key,
            reverse=query.direction == "desc",
        )

    def export_accounts(self, query: Optional[AccountQuery] = None) -> str:
        rows = []
        for account in self.search_accounts(query):
            last_login = self.accounts.effective_last_login(account)
            rows.append([
                account.name,
                account.email,
                account.role,
                account.status,
                account.branch,
                to_utc_z(account.created_at),
                to_utc_z(last_login) if last_login else "",
            ])
        return _to_csv(ACCOUNT_EXPORT_HEADER, rows)

    def account_summary(self) -> dict:
        accounts = self.accounts.all()
        return {
            "total": len(accounts),
            "by_status": {s: sum(1 for a in accounts if a.status == s) for s in ACCOUNT_STATUSES},
            "by_account_type": {t: sum(1 for a in accounts if a.account_type == t) for t in ACCOUNT_TYPES},
        }

    def confirmation_prompt(self, account_id: str, action: str) -> str:
        """User-facing sentence shown before a status transition is confirmed."""
        if action not in TRANSITIONS:
            raise ValueError(f"Unknown status action: {action!r}")
        account = self.accounts.get(account_id)
        return (
            f"{CONFIRMATION_VERBS[action]} the account of {account.name} ({account.email})? "
            f"Its status will change from {account.status} to {TRANSITIONS[action]}."
        )

    def create_account(self, payload: dict, *, actor: Optional[str]):
        return self.accounts.create(payload, actor=actor)

    def update_account(self, account_id: str, payload: dict, *, actor: Optional[str]):
        return self.accounts.update(account_id, payload, actor=actor)

    def delete_account(self, account_id: str, *, actor: Optional[str]):
        return self.accounts.delete(account_id, actor=actor)

    def change_status(self, account_id: str, action: str, *, actor: Optional[str]):
        """Run a confirmed activate / deactivate / suspend."""
        return self.accounts.transition(account_id, action, actor=actor)

    def resend_verification(self, account_id: str, *, actor: Optional[str]) -> NotificationOutcome:
        account = self.accounts.get(account_id)
        if account.status != "pending":
            raise ValidationError({"status": "Account is not pending activation"})
        return self._notify(KIND_VERIFICATION, account, actor)

    def send_password_reset(self, account_id: str, *, actor: Optional[str]) -> NotificationOutcome:
        account = self.accounts.get(account_id)
        return self._notify(KIND_PASSWORD_RESET, account, actor)

    def _notify(self, kind: str, account: AccountRecord, actor: Optional[str]) -> NotificationOutcome:
        try:
            self.notifier.send(
                kind,
                account.email,
                {"account_id": account.id, "name": account.name},
                requested_by=actor,
            )
        except NotificationError as exc:
            logger.warning("%s email for %s failed: %s", kind, account.email, exc)
            return NotificationOutcome(sent=False, error=str(exc))
        logger.info("%s email queued for %s", kind, account.email)
        return NotificationOutcome(sent=True)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def role_view(self, role: RoleRecord) -> RoleView:
        return RoleView(role=role, users_count=self.accounts.count_by_role(role))

    def search_roles(self, query: Optional[RoleQuery] = None) -> list[RoleView]:
        query = query or RoleQuery()
        text = query.text.lower() if query.text else None

        def matches(role: RoleRecord) -> bool:
            if text and text not in role.name.lower() and text not in (role.description or "").lower():
                return False
            if query.scope and role.scope != query.scope:
                return False
            return True

        views = [self.role_view(r) for r in self.roles.all() if matches(r)]

        if query.sort == "name":
            key = lambda v: v.role.name.casefold()
        elif query.sort == "users_count":
            key = lambda v: v.users_count
        else:
            key = lambda v: v.role.created_at

        return sorted(views, key=key, reverse=query.direction == "desc")

    def export_roles(self, query: Optional[RoleQuery] = None) -> str:
        rows = [
            [
                view.role.name,
                view.role.description or "",
                view.role.scope,
                view.users_count,
                to_utc_z(view.role.created_at),
            ]
            for view in self.search_roles(query)
        ]
        return _to_csv(ROLE_EXPORT_HEADER, rows)

    def permission_preview(self, role_id: str) -> dict:
        role = self.roles.get(role_id)
        modules = [
            {
                "module": module,
                "label": get_module_label(module),
                "actions": actions,
                "labels": [get_action_label(a) for a in actions],
                "fully_granted": role.permissions.is_module_fully_granted(module),
            }
            for module, actions in role.permissions.effective_permissions()
        ]
        return {
            "role_id": role.id,
            "modules": modules,
            "granted_count": role.permissions.granted_count(),
        }

    def create_role(self, payload: dict, *, actor: Optional[str]):
        return self.roles.create(payload, actor=actor)

    def update_role(self, role_id: str, payload: dict, *, actor: Optional[str]):
        return self.roles.update(role_id, payload, actor=actor)

    def delete_role(self, role_id: str, *, actor: Optional[str]):
        return self.roles.delete(role_id, actor=actor)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def activity(
        self,
        *,
        action: Optional[str] = None,
        actor: Optional[str] = None,
        target: Optional[str] = None,
        target_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[AuditEntry]:
        """Newest-first audit entries, filtered for the activity viewer."""
        action = _check_choice("action", action, AUDIT_ACTIONS)
        actor = (_blank_to_none(actor) or "").lower()
        target = (_blank_to_none(target) or "").lower()
        target_type = _blank_to_none(target_type)
        limit = self.audit.display_limit if limit is None else limit
        if limit < 1:
            raise ValidationError({"limit": "limit must be a positive integer"})

        result = []
        for entry in reversed(self.audit.entries()):
            if action and entry.action != action:
                continue
            if actor and (entry.actor_email or "").lower() != actor:
                continue
            if target and target not in ((entry.target_email or "").lower(), (entry.target_id or "").lower()):
                continue
            if target_type and entry.target_type != target_type:
                continue
            result.append(entry)
            if len(result) >= limit:
                break
        return result


def build_governance(*, notifier: Optional[NotificationSender] = None, display_limit: int = 50) -> GovernanceFacade:
    """Facade over the Flask-SQLAlchemy tables, loaded and ready."""
    facade = GovernanceFacade.from_stores(
        account_store=SqlTableStore(Account),
        role_store=SqlTableStore(Role),
        audit_store=SqlTableStore(AccountAuditEntry, order_by=[AccountAuditEntry.id.asc()]),
        notifier=notifier or OutboxNotificationSender(),
        display_limit=display_limit,
    )
    return facade.load()


def init_app(app) -> None:
    app.extensions["governance"] = None


def get_governance() -> GovernanceFacade:
    facade = current_app.extensions.get("governance")
    if facade is None:
        facade = build_governance(display_limit=current_app.config["AUDIT_DISPLAY_LIMIT"])
        current_app.extensions["governance"] = facade
    return facade


def reset_governance() -> None:
    """Drop the cached facade so the next access reloads from the store."""
    current_app.extensions["governance"] = None
