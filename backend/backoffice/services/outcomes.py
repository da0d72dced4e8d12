# Overview: Result types for best-effort remote writes.

"""
Every registry mutation makes exactly one attempt against the remote store.
The attempt ends in one of two outcomes:

- Persisted: the store confirmed the write.
- LocalOnly: the store call failed; the in-memory registry was changed
  anyway and the audit entry carries {"localOnly": true}.

Callers and tests branch on `outcome.local_only` instead of catching
exceptions. There is no retry and no queued resend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar, Union

from .remote_store import RemoteStoreError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Persisted:
    local_only: ClassVar[bool] = False


@dataclass(frozen=True)
class LocalOnly:
    reason: str
    local_only: ClassVar[bool] = True


WriteOutcome = Union[Persisted, LocalOnly]


def attempt_write(operation: Callable[[], Any], *, description: str) -> tuple[WriteOutcome, Any]:
    """Run one store call. Returns (outcome, value); value is None when LocalOnly."""
    try:
        value = operation()
    except RemoteStoreError as exc:
        logger.warning("%s failed on the remote store, applying locally: %s", description, exc)
        return LocalOnly(reason=str(exc)), None
    return Persisted(), value


def with_outcome_flag(details: Optional[dict], outcome: WriteOutcome) -> dict:
    merged = dict(details or {})
    if outcome.local_only:
        merged["localOnly"] = True
    return merged


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """What a registry mutation did: the record, how it was stored, and its audit entry."""
    record: T
    outcome: WriteOutcome
    audit_entry: Any = None

    @property
    def local_only(self) -> bool:
        return self.outcome.local_only
