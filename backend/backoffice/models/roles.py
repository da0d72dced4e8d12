from __future__ import annotations

import uuid

from ..extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Role(db.Model):
    """
    Named, scoped bundle of module/action permissions.

    permissions holds the full grid as {module: {action: bool}}
    (see backoffice.permissions.PermissionMatrix.to_dict).

    Name uniqueness (case-insensitive, per scope) is enforced by the role
    registry, not by a constraint: rows written by other tools may already
    violate it and must still load.

    users_count is not stored. It is derived from the accounts table.
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.Index("ix_roles_name_scope", "name", "scope"),
    )

    id = db.Column(db.String(64), primary_key=True, default=_new_id)

    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    scope = db.Column(db.String(16), nullable=False, default="branch")  # global, branch
    permissions = db.Column(db.JSON, nullable=False, default=dict)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
