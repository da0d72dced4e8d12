# Overview: Account email collaborator (verification, password reset).

"""
Account emails are fire-and-forget from the governance core: a send failure
is reported back to the caller and logged, and never rolls back account
state.

The default sender queues into the email_outbox table; a separate mail
worker delivers them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import EmailOutbox
from backoffice.time_utils import utcnow


KIND_VERIFICATION = "verification"
KIND_PASSWORD_RESET = "password_reset"


class NotificationError(Exception):
    """Raised when an email could not be handed off."""
    pass


@dataclass(frozen=True)
class NotificationOutcome:
    sent: bool
    error: Optional[str] = None


class NotificationSender:
    def send(self, kind: str, recipient: str, payload: dict, *, requested_by: Optional[str] = None) -> None:
        raise NotImplementedError


class OutboxNotificationSender(NotificationSender):
    def send(self, kind: str, recipient: str, payload: dict, *, requested_by: Optional[str] = None) -> None:
        try:
            db.session.add(
                EmailOutbox(
                    kind=kind,
                    recipient=recipient,
                    payload=dict(payload),
                    requested_by=requested_by,
                    created_at=utcnow(),
                )
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise NotificationError(f"Could not queue {kind} email for {recipient}") from exc


def pending_outbox(limit: int = 100) -> list[EmailOutbox]:
    """Unsent emails, oldest first."""
    return (
        db.session.query(EmailOutbox)
        .filter(EmailOutbox.sent_at.is_(None))
        .order_by(EmailOutbox.id.asc())
        .limit(limit)
        .all()
    )
