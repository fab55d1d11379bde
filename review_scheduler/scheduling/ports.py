"""Capabilities the review store expects from its persistence collaborator."""

from __future__ import annotations

from typing import AsyncIterator, List, Protocol

from .models import ReviewRecord


class ReviewPersistence(Protocol):
    """Durable mirror of a learner's review records.

    Implementations may retry internally. Failures surface as exceptions from
    :meth:`fetch_reviews` and :meth:`save_review`, and as a ``False`` result (or
    an exception) from :meth:`delete_review`.
    """

    async def fetch_reviews(self, owner_id: str) -> List[ReviewRecord]:
        ...

    async def save_review(self, record: ReviewRecord) -> ReviewRecord:
        ...

    async def delete_review(self, owner_id: str, item_id: str) -> bool:
        ...

    def stream_updates(self, owner_id: str) -> AsyncIterator[ReviewRecord]:
        ...
