"""Concurrent in-memory message store.

One store exists per entity kind. Ingestion channels insert from their
worker task; query facades read from whatever thread the caller runs on.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic

from pydustify.exceptions import DustifyConfigError
from pydustify.schemas import LatestPolicy, RecordSchema, RecordT
from pydustify.state.policy import select_latest


class MessageStore(Generic[RecordT]):
    """Append-oriented, insertion-ordered record store.

    Every operation holds a single lock for the duration of the append or
    the copy/scan, so reads are linearizable with respect to ``insert``
    and no record is ever lost, duplicated or observed half-written.

    Retention is unbounded by default. Passing ``max_records`` turns the
    store into a sliding window that discards the oldest records first.
    """

    def __init__(self, schema: RecordSchema[RecordT], *, max_records: int | None = None) -> None:
        if max_records is not None and (isinstance(max_records, bool) or not isinstance(max_records, int) or max_records <= 0):
            raise DustifyConfigError(f"max_records must be a positive integer when set, got {max_records!r}")
        self._schema = schema
        self._max_records = max_records
        self._lock = threading.Lock()
        self._records: deque[RecordT] = deque(maxlen=max_records)

    @property
    def schema(self) -> RecordSchema[RecordT]:
        return self._schema

    @property
    def max_records(self) -> int | None:
        return self._max_records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def insert(self, record: RecordT) -> None:
        """Append a decoded record."""
        if not isinstance(record, self._schema.model):
            raise TypeError(f"Expected {self._schema.model.__name__}, got {type(record).__name__}")
        with self._lock:
            self._records.append(record)

    def snapshot_all(self) -> list[RecordT]:
        """Return every retained record in insertion order."""
        with self._lock:
            return list(self._records)

    def latest_by_key(self, key: str, policy: LatestPolicy) -> RecordT | None:
        """Return the record judged latest for *key* under *policy*, if any."""
        with self._lock:
            return select_latest(
                self._records,
                key=key,
                key_of=self._schema.key_of,
                policy=policy,
                timestamp_of=self._schema.timestamp_of,
            )

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
