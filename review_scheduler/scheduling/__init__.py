"""Spaced-repetition scheduling: engine, review store and derived queries."""

from .engine import (
    DEFAULT_EASE_FACTOR,
    MIN_EASE_FACTOR,
    RELEARN_DELAY,
    MaturityBand,
    classify_interval,
    compute_next,
    preview,
)
from .models import Grade, NewItem, ReviewRecord
from .ports import ReviewPersistence
from .queries import due_count, due_items, next_due_at, select_due
from .stats import ReviewStats, compute_stats
from .store import ReviewStore, StoreChange, StoreChangeKind

__all__ = [
    "DEFAULT_EASE_FACTOR",
    "MIN_EASE_FACTOR",
    "RELEARN_DELAY",
    "Grade",
    "MaturityBand",
    "NewItem",
    "ReviewPersistence",
    "ReviewRecord",
    "ReviewStats",
    "ReviewStore",
    "StoreChange",
    "StoreChangeKind",
    "classify_interval",
    "compute_next",
    "compute_stats",
    "due_count",
    "due_items",
    "next_due_at",
    "preview",
    "select_due",
]
