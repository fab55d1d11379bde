"""Due-set queries over a collection of review records."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from .models import ReviewRecord


T = TypeVar("T")


def _due_order(record: ReviewRecord) -> tuple[datetime, str]:
    return record.due_at, record.item_id


def due_items(records: Iterable[ReviewRecord], now: datetime) -> List[ReviewRecord]:
    """Return every record due at ``now``, ordered by due time then item id."""
    return sorted((record for record in records if record.due_at <= now), key=_due_order)


def due_count(records: Iterable[ReviewRecord], now: datetime) -> int:
    """Count the records due at ``now`` without building the ordered list."""
    return sum(1 for record in records if record.due_at <= now)


def next_due_at(records: Iterable[ReviewRecord]) -> Optional[datetime]:
    """Return the earliest scheduled due time, or ``None`` for an empty collection."""
    return min((record.due_at for record in records), default=None)


def select_due(
    items: Sequence[T],
    records: Iterable[ReviewRecord],
    now: datetime,
    key: Callable[[T], str],
) -> List[T]:
    """Filter catalog ``items`` down to the ones whose review is due.

    Items are returned in due order; items without scheduling state are skipped.
    """
    position = {record.item_id: index for index, record in enumerate(due_items(records, now))}
    selected = [item for item in items if key(item) in position]
    selected.sort(key=lambda item: position[key(item)])
    return selected
