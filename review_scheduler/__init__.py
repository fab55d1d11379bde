"""Spaced-repetition review scheduling."""

from .scheduling import (
    Grade,
    NewItem,
    ReviewRecord,
    ReviewStats,
    ReviewStore,
    compute_next,
    compute_stats,
    due_count,
    due_items,
)

__all__ = [
    "Grade",
    "NewItem",
    "ReviewRecord",
    "ReviewStats",
    "ReviewStore",
    "compute_next",
    "compute_stats",
    "due_count",
    "due_items",
]
