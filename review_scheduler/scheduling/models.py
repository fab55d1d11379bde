"""Value types describing per-item spaced-repetition state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Mapping, Optional, Union


class Grade(IntEnum):
    """Learner's self-reported recall quality, ordered from worst to best."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @property
    def quality(self) -> int:
        """Numeric quality score used by the ease update."""
        return int(self)

    @classmethod
    def parse(cls, value: Union[str, int, "Grade"]) -> "Grade":
        """Accept a grade instance, its name (any case) or its quality score."""
        if isinstance(value, Grade):
            return value
        if isinstance(value, str):
            name = value.strip().split(".")[-1].upper()
            try:
                return cls[name]
            except KeyError as exc:
                raise ValueError(f"Unknown grade: {value!r}") from exc
        try:
            return cls(int(value))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Unknown grade: {value!r}") from exc


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive timestamps as UTC so comparisons never mix conventions."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of stored timestamps; returns ``None`` when unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_aware(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


@dataclass(frozen=True, slots=True)
class NewItem:
    """An item that has never been graded (or was reset) for this learner."""

    item_id: str
    owner_id: str


@dataclass(frozen=True, slots=True)
class ReviewRecord:
    """Scheduling state for one (item, learner) pair.

    Records are immutable: every grading produces a replacement record.
    ``interval_days`` is 0 only in the re-learning state that follows an
    ``Again`` grading.
    """

    item_id: str
    owner_id: str
    due_at: datetime
    ease_factor: float
    interval_days: int
    repetition_count: int
    last_grade: Grade
    last_reviewed_at: Optional[datetime]

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the flat camelCase mapping used on the wire."""
        return {
            "itemId": self.item_id,
            "ownerId": self.owner_id,
            "dueAt": self.due_at.isoformat(),
            "easeFactor": self.ease_factor,
            "intervalDays": self.interval_days,
            "repetitionCount": self.repetition_count,
            "lastGrade": self.last_grade.name.lower(),
            "lastReviewedAt": self.last_reviewed_at.isoformat() if self.last_reviewed_at else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ReviewRecord":
        """Build a record from :meth:`to_dict` output.

        A missing or unparseable ``lastReviewedAt`` decodes to ``None`` so the
        record can never win a reconciliation conflict. Any other missing or
        malformed field raises ``ValueError``.
        """
        try:
            item_id = str(payload["itemId"])
            owner_id = str(payload["ownerId"])
            raw_due = payload["dueAt"]
            ease_factor = float(payload["easeFactor"])
            interval_days = int(payload["intervalDays"])
            repetition_count = int(payload["repetitionCount"])
            last_grade = Grade.parse(payload["lastGrade"])
        except KeyError as exc:
            raise ValueError(f"Review payload is missing field {exc.args[0]!r}.") from exc
        except TypeError as exc:
            raise ValueError(f"Review payload has a malformed field: {exc}") from exc

        due_at = parse_timestamp(raw_due)
        if due_at is None:
            raise ValueError(f"Review payload has an invalid dueAt: {raw_due!r}")

        return cls(
            item_id=item_id,
            owner_id=owner_id,
            due_at=due_at,
            ease_factor=ease_factor,
            interval_days=interval_days,
            repetition_count=repetition_count,
            last_grade=last_grade,
            last_reviewed_at=parse_timestamp(payload.get("lastReviewedAt")),
        )


PreviousState = Union[NewItem, ReviewRecord]
