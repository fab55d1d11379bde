"""SQLAlchemy-backed persistence for review records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from review_scheduler.errors import PersistenceError
from review_scheduler.scheduling.models import Grade, ReviewRecord, ensure_aware

from . import ReviewState


LOGGER = logging.getLogger(__name__)


def state_to_record(state: ReviewState) -> ReviewRecord:
    """Convert a database row into a :class:`ReviewRecord`.

    Raises ``ValueError`` when the stored grade is not recognised.
    """
    return ReviewRecord(
        item_id=state.item_id,
        owner_id=state.owner_id,
        due_at=ensure_aware(state.due_at),
        ease_factor=state.ease_factor,
        interval_days=state.interval_days,
        repetition_count=state.repetition_count,
        last_grade=Grade.parse(state.last_grade),
        last_reviewed_at=ensure_aware(state.last_reviewed_at) if state.last_reviewed_at else None,
    )


async def get_review_state(session: AsyncSession, owner_id: str, item_id: str) -> Optional[ReviewState]:
    """Return the stored state for one item, if any."""
    return await session.get(ReviewState, (owner_id, item_id))


async def list_review_states(session: AsyncSession, owner_id: str) -> Sequence[ReviewState]:
    """Return every stored state for an owner ordered by due time."""
    stmt = (
        select(ReviewState)
        .where(ReviewState.owner_id == owner_id)
        .order_by(ReviewState.due_at, ReviewState.item_id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def upsert_review_state(
    session: AsyncSession,
    record: ReviewRecord,
    now: Optional[datetime] = None,
) -> ReviewState:
    """Create or fully replace the stored state for ``record``."""
    if now is None:
        now = datetime.now(timezone.utc)

    state = await get_review_state(session, record.owner_id, record.item_id)
    if state is None:
        state = ReviewState(owner_id=record.owner_id, item_id=record.item_id, created_at=now)
        session.add(state)

    state.due_at = record.due_at.astimezone(timezone.utc)
    state.ease_factor = record.ease_factor
    state.interval_days = record.interval_days
    state.repetition_count = record.repetition_count
    state.last_grade = record.last_grade.name.lower()
    state.last_reviewed_at = (
        record.last_reviewed_at.astimezone(timezone.utc) if record.last_reviewed_at else None
    )
    state.updated_at = now
    await session.flush()
    return state


async def delete_review_state(session: AsyncSession, owner_id: str, item_id: str) -> int:
    """Delete the stored state for one item and return the number of removed rows."""
    stmt = delete(ReviewState).where(
        ReviewState.owner_id == owner_id,
        ReviewState.item_id == item_id,
    )
    result = await session.execute(stmt)
    return result.rowcount or 0


class SqlAlchemyReviewPersistence:
    """Review persistence over an async SQLAlchemy session factory.

    Saved records are also broadcast to every :meth:`stream_updates` consumer
    of the same owner, so stores sharing this adapter see each other's writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    async def fetch_reviews(self, owner_id: str) -> List[ReviewRecord]:
        try:
            async with self._session_factory() as session:
                states = await list_review_states(session, owner_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not fetch reviews for owner {owner_id}.") from exc

        records: List[ReviewRecord] = []
        for state in states:
            try:
                records.append(state_to_record(state))
            except ValueError:
                LOGGER.warning("Skipping malformed review row %s/%s.", state.owner_id, state.item_id)
        return records

    async def save_review(self, record: ReviewRecord) -> ReviewRecord:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await upsert_review_state(session, record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save review for item {record.item_id}.") from exc

        self._publish(record)
        return record

    async def delete_review(self, owner_id: str, item_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    removed = await delete_review_state(session, owner_id, item_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete review for item {item_id}.") from exc

        LOGGER.debug("Deleted %d review rows for %s/%s.", removed, owner_id, item_id)
        return True

    async def stream_updates(self, owner_id: str) -> AsyncIterator[ReviewRecord]:
        queue: asyncio.Queue = asyncio.Queue()
        subscribers = self._subscribers.setdefault(owner_id, [])
        subscribers.append(queue)
        try:
            while True:
                record = await queue.get()
                if record is None:
                    return
                yield record
        finally:
            subscribers.remove(queue)
            if not subscribers:
                self._subscribers.pop(owner_id, None)

    def close_streams(self) -> None:
        """End every open :meth:`stream_updates` iterator."""
        for subscribers in self._subscribers.values():
            for queue in subscribers:
                queue.put_nowait(None)

    def _publish(self, record: ReviewRecord) -> None:
        for queue in self._subscribers.get(record.owner_id, ()):
            queue.put_nowait(record)
