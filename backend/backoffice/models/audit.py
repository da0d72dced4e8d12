from __future__ import annotations

from ..extensions import db


class AccountAuditEntry(db.Model):
    """
    Governance audit log.

    WHY: Every privileged change to an account or role is attributable to an
    actor (null actor = system-initiated, e.g. CLI bootstrap).

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    target_email / target_id are copied values, not foreign keys, so history
    survives deletion of the account it describes. The autoincrement id is the
    chronological order.
    """
    __tablename__ = "account_audit"
    __table_args__ = (
        db.Index("ix_account_audit_created", "created_at"),
        db.Index("ix_account_audit_target", "target_type", "target_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    actor_email = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(16), nullable=False, index=True)  # create, update, delete, activate, deactivate, suspend
    target_type = db.Column(db.String(16), nullable=False, default="account")  # account, role
    target_email = db.Column(db.String(255), nullable=True)
    target_id = db.Column(db.String(64), nullable=True)
    details = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
