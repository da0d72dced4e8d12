from __future__ import annotations

import uuid

from ..extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Account(db.Model):
    """
    User and staff accounts managed from the back-office.

    WHY: Every governance action targets an account. Ids are opaque strings so
    rows created while the store was unreachable (local ids like "u_ab12cd34")
    and store-issued ids share one shape.

    linked_user_id is a non-owning reference from a staff account to the user
    account it logs in with. No foreign key: deleting the user leaves the link
    dangling and readers treat it as absent.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_email", "email"),
        db.Index("ix_accounts_role", "role"),
    )

    id = db.Column(db.String(64), primary_key=True, default=_new_id)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending")
    branch = db.Column(db.String(120), nullable=False)
    account_type = db.Column(db.String(16), nullable=False, default="user")
    linked_user_id = db.Column(db.String(64), nullable=True)

    # Staff profile
    phone = db.Column(db.String(32), nullable=True)
    position = db.Column(db.String(120), nullable=True)
    department = db.Column(db.String(120), nullable=True)
    employee_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    # Written by the authentication subsystem only
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
