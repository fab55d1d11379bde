"""Summary counters derived from a learner's review collection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable

from .engine import MaturityBand, classify_interval
from .models import ReviewRecord


@dataclass(frozen=True, slots=True)
class ReviewStats:
    """Aggregated review counters for one learner at one instant."""

    total: int = 0
    due: int = 0
    reviewed_today: int = 0
    learning: int = 0
    mature: int = 0

    @property
    def reviewing(self) -> int:
        """Records that are neither learning nor mature."""
        return self.total - self.learning - self.mature

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "due": self.due,
            "reviewedToday": self.reviewed_today,
            "learning": self.learning,
            "mature": self.mature,
        }


def compute_stats(
    records: Iterable[ReviewRecord],
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> ReviewStats:
    """Aggregate ``records`` into :class:`ReviewStats`.

    ``reviewed_today`` compares calendar dates after converting both ``now`` and
    each ``last_reviewed_at`` into ``tz``.
    """
    today = now.astimezone(tz).date()
    total = due = reviewed_today = learning = mature = 0

    for record in records:
        total += 1
        if record.due_at <= now:
            due += 1
        if record.last_reviewed_at is not None and record.last_reviewed_at.astimezone(tz).date() == today:
            reviewed_today += 1
        band = classify_interval(record.interval_days)
        if band is MaturityBand.LEARNING:
            learning += 1
        elif band is MaturityBand.MATURE:
            mature += 1

    return ReviewStats(
        total=total,
        due=due,
        reviewed_today=reviewed_today,
        learning=learning,
        mature=mature,
    )
