# Overview: Append-only governance audit trail.

"""
AuditTrail

WHY: Every account and role mutation is recorded with its actor, target and
outcome. The trail is written even when the mutation itself could only be
applied locally, so the audit is the one place that tells "saved remotely"
apart from "saved locally only" ({"localOnly": true} in details).

DESIGN PRINCIPLES:
- Append-only: there is no update or delete here.
- Insertion order is chronological order.
- Nothing is dropped from memory. `recent()` returns a bounded newest-first
  window for display; the persisted table keeps everything.
- Read-side filtering for the activity viewer lives in GovernanceFacade.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from backoffice.time_utils import utcnow
from .outcomes import attempt_write
from .remote_store import RemoteStoreError, TableStore
from .schemas import AUDIT_ACTIONS, AuditEntry, SchemaError


logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_LIMIT = 50


class AuditTrail:
    def __init__(self, store: TableStore, display_limit: int = DEFAULT_DISPLAY_LIMIT):
        self._store = store
        self._entries: list[AuditEntry] = []
        self.display_limit = display_limit

    def load(self) -> int:
        """
        Replace in-memory history with the persisted trail.

        Unreadable rows are skipped with a warning. If the store cannot be
        read at all, the current in-memory entries are kept.
        """
        try:
            rows = self._store.select()
        except RemoteStoreError as exc:
            logger.warning("Audit history unavailable, keeping in-memory entries: %s", exc)
            return len(self._entries)

        entries = []
        for row in rows:
            try:
                entries.append(AuditEntry.from_row(row))
            except SchemaError as exc:
                logger.warning("Skipping audit row %s: %s", row.get("id"), exc)
        self._entries = entries
        return len(entries)

    def append(self, entry: AuditEntry) -> AuditEntry:
        if entry.action not in AUDIT_ACTIONS:
            raise ValueError(f"Unknown audit action: {entry.action!r}")

        outcome, entry_id = attempt_write(
            lambda: self._store.insert(entry.to_row()),
            description=f"Audit append ({entry.action} {entry.target_type} {entry.target_id})",
        )
        if not outcome.local_only:
            entry = replace(entry, id=entry_id)

        self._entries.append(entry)
        return entry

    def record(
        self,
        *,
        actor: Optional[str],
        action: str,
        target_type: str,
        target_id: Optional[str],
        target_email: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditEntry:
        """Build an entry stamped now and append it."""
        return self.append(
            AuditEntry(
                actor_email=actor,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_email=target_email,
                details=dict(details or {}),
                created_at=utcnow(),
            )
        )

    def entries(self) -> list[AuditEntry]:
        """Full trail, oldest first."""
        return list(self._entries)

    def recent(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """Newest-first display window."""
        limit = self.display_limit if limit is None else limit
        return list(reversed(self._entries))[:limit]

    def __len__(self) -> int:
        return len(self._entries)
