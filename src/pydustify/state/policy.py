"""Latest-by-key selection rules.

Pure functions over an insertion-ordered sequence of records. The store
calls them under its lock; they never mutate their input.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import TypeVar

from pydustify.schemas import LatestPolicy

T = TypeVar("T")

# Records without a timestamp rank as the oldest possible reading.
_OLDEST = datetime.min.replace(tzinfo=UTC)


def keys_match(left: str, right: str) -> bool:
    return left.casefold() == right.casefold()


def last_inserted(records: Sequence[T], matches: Callable[[T], bool]) -> T | None:
    """Return the most recently inserted record accepted by *matches*."""
    for record in reversed(records):
        if matches(record):
            return record
    return None


def newest_by_timestamp(
    records: Iterable[T],
    matches: Callable[[T], bool],
    timestamp_of: Callable[[T], datetime | None],
) -> T | None:
    """Return the matching record with the greatest timestamp.

    Ties resolve to the earliest inserted record, like a stable sort in
    descending order followed by taking the first element.
    """
    best: T | None = None
    best_ts = _OLDEST
    for record in records:
        if not matches(record):
            continue
        ts = timestamp_of(record) or _OLDEST
        if best is None or ts > best_ts:
            best = record
            best_ts = ts
    return best


def select_latest(
    records: Sequence[T],
    *,
    key: str,
    key_of: Callable[[T], str],
    policy: LatestPolicy,
    timestamp_of: Callable[[T], datetime | None],
) -> T | None:
    """Apply *policy* to pick the latest record for *key*."""

    def matches(record: T) -> bool:
        return keys_match(key_of(record), key)

    if policy == LatestPolicy.BY_FIELD_TIMESTAMP_DESCENDING:
        return newest_by_timestamp(records, matches, timestamp_of)
    return last_inserted(records, matches)
