from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from review_scheduler.scheduling.models import Grade, ReviewRecord
from review_scheduler.scheduling.queries import due_count, due_items, next_due_at, select_due


NOW = datetime(2026, 1, 20, 12, 0, tzinfo=timezone.utc)


def _record(item_id: str, due_in: timedelta) -> ReviewRecord:
    return ReviewRecord(
        item_id=item_id,
        owner_id="learner-1",
        due_at=NOW + due_in,
        ease_factor=2.5,
        interval_days=3,
        repetition_count=2,
        last_grade=Grade.GOOD,
        last_reviewed_at=NOW - timedelta(days=3),
    )


@dataclass
class _Card:
    id: str
    front: str


RECORDS = [
    _record("delta", timedelta(hours=-1)),
    _record("alpha", timedelta(days=-2)),
    _record("charlie", timedelta(0)),
    _record("bravo", timedelta(hours=-1)),
    _record("echo", timedelta(seconds=1)),
    _record("foxtrot", timedelta(days=5)),
]


def test_due_items_returns_only_due_records_in_order() -> None:
    result = due_items(RECORDS, NOW)

    assert [record.item_id for record in result] == ["alpha", "bravo", "delta", "charlie"]
    assert all(record.due_at <= NOW for record in result)


def test_due_items_includes_every_due_record() -> None:
    due_ids = {record.item_id for record in due_items(RECORDS, NOW)}
    expected = {record.item_id for record in RECORDS if record.due_at <= NOW}

    assert due_ids == expected


def test_due_count_matches_due_items() -> None:
    assert due_count(RECORDS, NOW) == len(due_items(RECORDS, NOW)) == 4
    assert due_count(RECORDS, NOW + timedelta(days=10)) == len(RECORDS)
    assert due_count([], NOW) == 0


def test_next_due_at() -> None:
    assert next_due_at(RECORDS) == NOW - timedelta(days=2)
    assert next_due_at([]) is None


def test_select_due_filters_catalog_in_due_order() -> None:
    catalog = [
        _Card("charlie", "c"),
        _Card("foxtrot", "f"),
        _Card("unseen", "u"),
        _Card("alpha", "a"),
    ]

    selected = select_due(catalog, RECORDS, NOW, key=lambda card: card.id)

    assert [card.id for card in selected] == ["alpha", "charlie"]
