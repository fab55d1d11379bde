"""Spaced-repetition scheduling based on a four-grade SM-2 variant."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from enum import Enum

from .models import Grade, NewItem, PreviousState, ReviewRecord


DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
RELEARN_DELAY = timedelta(minutes=10)
LEARNING_INTERVAL_DAYS = 0
LEARNING_THRESHOLD_DAYS = 7
MATURE_THRESHOLD_DAYS = 21

_INITIAL_INTERVAL_DAYS = {
    Grade.HARD: 1,
    Grade.GOOD: 1,
    Grade.EASY: 3,
}


class MaturityBand(str, Enum):
    """Reporting bands derived from the current interval length."""

    LEARNING = "learning"
    REVIEWING = "reviewing"
    MATURE = "mature"


def classify_interval(interval_days: int) -> MaturityBand:
    """Return the maturity band for an interval expressed in days."""
    if interval_days < LEARNING_THRESHOLD_DAYS:
        return MaturityBand.LEARNING
    if interval_days >= MATURE_THRESHOLD_DAYS:
        return MaturityBand.MATURE
    return MaturityBand.REVIEWING


def _round_half_up(value: float) -> int:
    # Trim float noise first so 2.4999999999 products still round to 3.
    return int(math.floor(round(value, 9) + 0.5))


def next_ease_factor(ease_factor: float, grade: Grade) -> float:
    """Apply the SM-2 ease adjustment for ``grade`` and enforce the floor."""
    miss = 3 - grade.quality
    adjusted = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASE_FACTOR, adjusted)


def _first_review(item: NewItem, grade: Grade, now: datetime) -> ReviewRecord:
    if grade is Grade.AGAIN:
        interval_days = LEARNING_INTERVAL_DAYS
        due_at = now + RELEARN_DELAY
    else:
        interval_days = _INITIAL_INTERVAL_DAYS[grade]
        due_at = now + timedelta(days=interval_days)

    return ReviewRecord(
        item_id=item.item_id,
        owner_id=item.owner_id,
        due_at=due_at,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval_days=interval_days,
        repetition_count=1,
        last_grade=grade,
        last_reviewed_at=now,
    )


def _repeat_review(previous: ReviewRecord, grade: Grade, now: datetime) -> ReviewRecord:
    ease_factor = next_ease_factor(previous.ease_factor, grade)

    if grade is Grade.AGAIN:
        # The penalty is kept in the ease, but the interval restarts from the learning step.
        interval_days = LEARNING_INTERVAL_DAYS
        due_at = now + RELEARN_DELAY
    else:
        interval_days = max(1, _round_half_up(previous.interval_days * ease_factor))
        due_at = now + timedelta(days=interval_days)

    return ReviewRecord(
        item_id=previous.item_id,
        owner_id=previous.owner_id,
        due_at=due_at,
        ease_factor=ease_factor,
        interval_days=interval_days,
        repetition_count=previous.repetition_count + 1,
        last_grade=grade,
        last_reviewed_at=now,
    )


def compute_next(previous: PreviousState, grade: Grade, now: datetime) -> ReviewRecord:
    """Return the record that results from grading ``previous`` at ``now``.

    ``previous`` is either a :class:`NewItem` for an item without scheduling
    state or the item's current :class:`ReviewRecord`. The function is pure
    and total: it performs no I/O and never raises for valid grades.
    """
    if isinstance(previous, NewItem):
        return _first_review(previous, grade, now)
    if isinstance(previous, ReviewRecord):
        return _repeat_review(previous, grade, now)
    raise TypeError(f"Unsupported scheduling state: {type(previous).__name__}")


def preview(previous: PreviousState, now: datetime) -> dict[Grade, ReviewRecord]:
    """Return the outcome of every grade so callers can label answer options."""
    return {grade: compute_next(previous, grade, now) for grade in Grade}
