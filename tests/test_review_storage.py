from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from review_scheduler.db import ReviewState
from review_scheduler.db.reviews import (
    SqlAlchemyReviewPersistence,
    delete_review_state,
    get_review_state,
    list_review_states,
    upsert_review_state,
)
from review_scheduler.errors import PersistenceError
from review_scheduler.scheduling import Grade, ReviewRecord, ReviewStore


NOW = datetime(2026, 9, 1, 7, 15, 30, tzinfo=timezone.utc)


def _record(item_id: str, owner_id: str = "learner-1", due_in: timedelta = timedelta(days=3)) -> ReviewRecord:
    return ReviewRecord(
        item_id=item_id,
        owner_id=owner_id,
        due_at=NOW + due_in,
        ease_factor=2.36,
        interval_days=3,
        repetition_count=2,
        last_grade=Grade.HARD,
        last_reviewed_at=NOW,
    )


@pytest.mark.asyncio
async def test_upsert_review_state_creates_then_replaces(session_factory) -> None:
    first = _record("σπίτι")
    second = ReviewRecord(
        item_id="σπίτι",
        owner_id="learner-1",
        due_at=NOW + timedelta(minutes=10),
        ease_factor=2.04,
        interval_days=0,
        repetition_count=3,
        last_grade=Grade.AGAIN,
        last_reviewed_at=NOW + timedelta(days=3),
    )

    async with session_factory() as session:
        async with session.begin():
            await upsert_review_state(session, first)
        async with session.begin():
            await upsert_review_state(session, second)
        async with session.begin():
            states = await list_review_states(session, "learner-1")

    assert len(states) == 1
    assert states[0].last_grade == "again"
    assert states[0].repetition_count == 3
    assert states[0].interval_days == 0


@pytest.mark.asyncio
async def test_list_review_states_orders_by_due_then_item(session_factory) -> None:
    async with session_factory() as session:
        async with session.begin():
            await upsert_review_state(session, _record("b", due_in=timedelta(days=1)))
            await upsert_review_state(session, _record("a", due_in=timedelta(days=1)))
            await upsert_review_state(session, _record("c", due_in=timedelta(hours=1)))
            await upsert_review_state(session, _record("z", owner_id="learner-2"))

        states = await list_review_states(session, "learner-1")

    assert [state.item_id for state in states] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_delete_review_state_reports_removed_rows(session_factory) -> None:
    async with session_factory() as session:
        async with session.begin():
            await upsert_review_state(session, _record("a"))
        async with session.begin():
            removed = await delete_review_state(session, "learner-1", "a")
            missing = await delete_review_state(session, "learner-1", "a")
            state = await get_review_state(session, "learner-1", "a")

    assert removed == 1
    assert missing == 0
    assert state is None


@pytest.mark.asyncio
async def test_persistence_round_trips_records_losslessly(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    record = _record("λόγος")

    await persistence.save_review(record)
    fetched = await persistence.fetch_reviews("learner-1")

    assert fetched == [record]
    assert fetched[0].due_at.tzinfo is not None
    assert await persistence.fetch_reviews("learner-2") == []


@pytest.mark.asyncio
async def test_persistence_normalizes_offsets_to_utc(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    athens = timezone(timedelta(hours=3))
    local = ReviewRecord(
        item_id="θάλασσα",
        owner_id="learner-1",
        due_at=datetime(2026, 9, 2, 10, 0, tzinfo=athens),
        ease_factor=2.5,
        interval_days=1,
        repetition_count=1,
        last_grade=Grade.GOOD,
        last_reviewed_at=datetime(2026, 9, 1, 10, 0, tzinfo=athens),
    )

    await persistence.save_review(local)
    [fetched] = await persistence.fetch_reviews("learner-1")

    assert fetched.due_at == local.due_at
    assert fetched.due_at.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_fetch_skips_rows_with_unknown_grade(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    await persistence.save_review(_record("good-row"))
    await persistence.save_review(_record("bad-row"))

    async with session_factory() as session:
        async with session.begin():
            state = await session.get(ReviewState, ("learner-1", "bad-row"))
            state.last_grade = "perfect"

    fetched = await persistence.fetch_reviews("learner-1")

    assert [record.item_id for record in fetched] == ["good-row"]


@pytest.mark.asyncio
async def test_persistence_wraps_database_errors(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    async with session_factory() as session:
        async with session.begin():
            await session.execute(text("DROP TABLE review_states"))

    with pytest.raises(PersistenceError):
        await persistence.fetch_reviews("learner-1")
    with pytest.raises(PersistenceError):
        await persistence.save_review(_record("a"))
    with pytest.raises(PersistenceError):
        await persistence.delete_review("learner-1", "a")


@pytest.mark.asyncio
async def test_store_reloads_gradings_from_database(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    store = ReviewStore(persistence, "learner-1")

    store.record_grading("μαθαίνω", Grade.GOOD, now=NOW)
    latest = store.record_grading("μαθαίνω", Grade.EASY, now=NOW + timedelta(days=1))
    await store.flush()
    store.record_grading("καλημέρα", Grade.AGAIN, now=NOW)
    await store.flush()

    reloaded = ReviewStore(persistence, "learner-1")
    await reloaded.load()

    assert reloaded.get("μαθαίνω") == latest
    assert reloaded.stats(NOW + timedelta(hours=1)).due == 1

    assert await reloaded.reset_item("μαθαίνω", now=NOW + timedelta(days=2)) is True
    assert [record.item_id for record in await persistence.fetch_reviews("learner-1")] == ["καλημέρα"]


@pytest.mark.asyncio
async def test_saves_are_streamed_to_other_stores(session_factory) -> None:
    persistence = SqlAlchemyReviewPersistence(session_factory)
    phone = ReviewStore(persistence, "learner-1")
    laptop = ReviewStore(persistence, "learner-1")
    follower = asyncio.create_task(laptop.follow_updates())
    await asyncio.sleep(0)

    graded = phone.record_grading("ευχαριστώ", Grade.GOOD, now=NOW)
    await phone.flush()
    await asyncio.sleep(0)

    persistence.close_streams()
    await follower

    assert laptop.get("ευχαριστώ") == graded
