"""
Pytest fixtures for back-office governance tests.

Provides:
- MemoryStore: an in-memory TableStore whose calls can be made to fail,
  for exercising the local-only degrade path without a database
- governance: a loaded GovernanceFacade over MemoryStores
- app / client: the Flask app on in-memory SQLite, and its test client
"""

from datetime import datetime

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.permissions import DEFAULT_ROLES, PermissionMatrix
from backoffice.services import auth_service
from backoffice.services.governance_service import GovernanceFacade, get_governance
from backoffice.services.notification_service import NotificationError, NotificationSender
from backoffice.services.remote_store import RemoteStoreError, TableStore


class MemoryStore(TableStore):
    """Insertion-ordered rows keyed by id. Set `fail = True` to make every call raise."""

    def __init__(self, rows=None, prefix="row"):
        self.rows = {}
        self.fail = False
        self.calls = []
        self._prefix = prefix
        self._seq = 0
        for row in rows or []:
            row = dict(row)
            row_id = str(row.get("id") or self._next_id())
            row["id"] = row_id
            self.rows[row_id] = row

    def _next_id(self):
        self._seq += 1
        return f"{self._prefix}-{self._seq}"

    def _call(self, op):
        self.calls.append(op)
        if self.fail:
            raise RemoteStoreError(f"{op}: service unavailable")

    def select(self, **filters):
        self._call("select")
        return [
            dict(row) for row in self.rows.values()
            if all(row.get(k) == v for k, v in filters.items())
        ]

    def insert(self, row):
        self._call("insert")
        row_id = self._next_id()
        self.rows[row_id] = {**row, "id": row_id}
        return row_id

    def update(self, row_id, patch):
        self._call("update")
        if row_id not in self.rows:
            raise RemoteStoreError(f"row {row_id} not found")
        self.rows[row_id].update(patch)

    def delete(self, row_id):
        self._call("delete")
        if row_id not in self.rows:
            raise RemoteStoreError(f"row {row_id} not found")
        del self.rows[row_id]


class RecordingNotifier(NotificationSender):
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, kind, recipient, payload, *, requested_by=None):
        if self.fail:
            raise NotificationError("mail relay down")
        self.sent.append((kind, recipient, dict(payload), requested_by))


def role_row(name, scope, *, role_id=None, grants=None, created_at=None, description=None):
    """Store-shaped role row."""
    return {
        "id": role_id or f"{name.lower()}-{scope}",
        "name": name,
        "description": description,
        "scope": scope,
        "permissions": PermissionMatrix(grants or {}).to_dict(),
        "is_default": False,
        "created_at": created_at or datetime(2024, 1, 1),
    }


def default_role_rows():
    return [
        role_row(name, scope, grants=grants, description=description,
                 created_at=datetime(2024, 1, 1 + i))
        for i, (name, description, scope, grants) in enumerate(DEFAULT_ROLES)
    ]


def account_row(account_id, name, email, *, role="Staff", status="active", branch="Main",
                account_type="user", created_at=None, last_login_at=None, linked_user_id=None):
    return {
        "id": account_id,
        "name": name,
        "email": email,
        "role": role,
        "status": status,
        "branch": branch,
        "account_type": account_type,
        "linked_user_id": linked_user_id,
        "created_at": created_at or datetime(2024, 2, 1),
        "last_login_at": last_login_at,
    }


def account_payload(**overrides):
    payload = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "role": "Staff",
        "status": "active",
        "branch": "Main",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def stores():
    return {
        "accounts": MemoryStore(prefix="acc"),
        "roles": MemoryStore(default_role_rows(), prefix="role"),
        "audit": MemoryStore(prefix="audit"),
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()


def build_facade(stores, notifier, display_limit=50):
    return GovernanceFacade.from_stores(
        account_store=stores["accounts"],
        role_store=stores["roles"],
        audit_store=stores["audit"],
        notifier=notifier,
        display_limit=display_limit,
    ).load()


@pytest.fixture
def governance(stores, notifier):
    """Loaded facade over in-memory stores seeded with the default roles."""
    return build_facade(stores, notifier)


# =============================================================================
# FLASK APP
# =============================================================================

@pytest.fixture
def app():
    """Create application for testing; fresh in-memory database per test."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def seeded(app):
    """Default roles plus an active Admin account and an active Staff account."""
    facade = get_governance()
    facade.roles.seed_defaults()
    admin = facade.create_account(
        account_payload(name="Ada Admin", email="admin@example.com", role="Admin"), actor=None
    ).record
    staff = facade.create_account(
        account_payload(name="Sam Staff", email="staff@example.com", role="Staff"), actor=None
    ).record
    return {"admin": admin, "staff": staff}


@pytest.fixture
def admin_headers(seeded):
    return auth_headers(auth_service.issue_token(seeded["admin"].email))


@pytest.fixture
def staff_headers(seeded):
    return auth_headers(auth_service.issue_token(seeded["staff"].email))
