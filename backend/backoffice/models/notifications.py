from __future__ import annotations

from ..extensions import db


class EmailOutbox(db.Model):
    """
    Queued account emails (verification, password reset).

    WHY: The back-office never talks SMTP directly. A mail worker drains this
    table and stamps sent_at.
    """
    __tablename__ = "email_outbox"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False, index=True)  # verification, password_reset
    recipient = db.Column(db.String(255), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    requested_by = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

