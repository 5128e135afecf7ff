"""Read-only query accessors over a message store.

This is the surface an HTTP layer calls: an empty list or ``None`` means
"nothing to return" and maps to a not-found response. Queries never raise.
"""

from __future__ import annotations

from typing import Generic

from pydustify.schemas import EntityKind, LatestPolicy, RecordT
from pydustify.state.store import MessageStore


class RecordQuery(Generic[RecordT]):
    """Queries for one entity kind, using that kind's latest policy."""

    def __init__(self, store: MessageStore[RecordT]) -> None:
        self._store = store

    @property
    def kind(self) -> EntityKind:
        return self._store.schema.kind

    @property
    def latest_policy(self) -> LatestPolicy:
        return self._store.schema.latest_policy

    def list_all(self) -> list[RecordT]:
        """Every record received so far, oldest first."""
        return self._store.snapshot_all()

    def get_latest(self, key: str) -> RecordT | None:
        """The record judged latest for *key*, or ``None`` if there is none."""
        if not isinstance(key, str) or not key.strip():
            return None
        return self._store.latest_by_key(key.strip(), self.latest_policy)

    def count(self) -> int:
        return len(self._store)
