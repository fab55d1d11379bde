"""In-memory owner of a learner's review records with asynchronous persistence."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from .engine import compute_next
from .models import Grade, NewItem, ReviewRecord, ensure_aware
from .ports import ReviewPersistence
from .queries import due_count, due_items
from .stats import ReviewStats, compute_stats


LOGGER = logging.getLogger(__name__)


class StoreChangeKind(str, Enum):
    GRADED = "graded"
    RESET = "reset"
    LOADED = "loaded"
    RECONCILED = "reconciled"
    PERSIST_FAILED = "persist_failed"


@dataclass(frozen=True, slots=True)
class StoreChange:
    """Notification emitted after every observable change to the store."""

    kind: StoreChangeKind
    item_id: Optional[str] = None
    record: Optional[ReviewRecord] = None


StoreListener = Callable[[StoreChange], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewStore:
    """Authoritative review collection for a single learner.

    Local state changes synchronously and is visible as soon as a method
    returns; the persistence collaborator is updated in background tasks and
    only feeds data back in through :meth:`load` and :meth:`reconcile`.
    """

    def __init__(
        self,
        persistence: ReviewPersistence,
        owner_id: str,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._persistence = persistence
        self._owner_id = owner_id
        self._clock = clock or _utc_now
        self._tz = tz
        self._records: Dict[str, ReviewRecord] = {}
        self._saves: Dict[str, asyncio.Task] = {}
        self._deletes: Dict[str, asyncio.Task] = {}
        self._tombstones: Dict[str, datetime] = {}
        self._failed_writes: Set[str] = set()
        self._listeners: List[StoreListener] = []
        self._is_loading = False
        self._load_error: Optional[BaseException] = None
        self._changed_during_load: Optional[Set[str]] = None

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def load_error(self) -> Optional[BaseException]:
        """Error raised by the most recent :meth:`load`, if it failed."""
        return self._load_error

    @property
    def failed_writes(self) -> FrozenSet[str]:
        """Item ids whose latest grading could not be persisted."""
        return frozenset(self._failed_writes)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def get(self, item_id: str) -> Optional[ReviewRecord]:
        return self._records.get(item_id)

    def records(self) -> Tuple[ReviewRecord, ...]:
        """Return a snapshot of every tracked record."""
        return tuple(self._records.values())

    def has_pending_write(self, item_id: str) -> bool:
        task = self._saves.get(item_id)
        return task is not None and not task.done()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` for change notifications and return an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: StoreChangeKind, item_id: Optional[str] = None, record: Optional[ReviewRecord] = None) -> None:
        change = StoreChange(kind=kind, item_id=item_id, record=record)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                LOGGER.exception("Review store listener failed while handling %s.", kind.value)

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_aware(now if now is not None else self._clock())

    # Queries

    def due_items(self, now: Optional[datetime] = None) -> List[ReviewRecord]:
        return due_items(self._records.values(), self._now(now))

    def due_count(self, now: Optional[datetime] = None) -> int:
        return due_count(self._records.values(), self._now(now))

    def stats(self, now: Optional[datetime] = None) -> ReviewStats:
        return compute_stats(self._records.values(), self._now(now), self._tz)

    # Local mutations

    def record_grading(self, item_id: str, grade: Grade, now: Optional[datetime] = None) -> ReviewRecord:
        """Apply ``grade`` to the item and return the new record immediately.

        The write to the persistence collaborator runs in the background. A
        grading that arrives while an earlier write for the same item is still
        in flight supersedes that write.
        """
        now = self._now(now)
        previous = self._records.get(item_id)
        if previous is None:
            record = compute_next(NewItem(item_id=item_id, owner_id=self._owner_id), grade, now)
        else:
            record = compute_next(previous, grade, now)

        self._records[item_id] = record
        self._tombstones.pop(item_id, None)
        self._failed_writes.discard(item_id)
        LOGGER.debug(
            "Graded %s as %s: interval=%s ease=%.2f due=%s.",
            item_id,
            grade.name,
            record.interval_days,
            record.ease_factor,
            record.due_at.isoformat(),
        )
        self._note_local_change(item_id)
        self._emit(StoreChangeKind.GRADED, item_id, record)
        self._schedule_save(record)
        return record

    async def reset_item(self, item_id: str, now: Optional[datetime] = None) -> bool:
        """Stop tracking ``item_id`` and ask the backend to delete it.

        The local removal always happens. The return value only reports
        whether the remote deletion succeeded.
        """
        now = self._now(now)
        removed = self._records.pop(item_id, None)
        self._failed_writes.discard(item_id)

        tombstone = now
        if removed is not None and removed.last_reviewed_at is not None:
            tombstone = max(now, removed.last_reviewed_at)
        self._tombstones[item_id] = tombstone
        self._note_local_change(item_id)
        self._emit(StoreChangeKind.RESET, item_id)

        pending_save = self._saves.pop(item_id, None)
        task = asyncio.get_running_loop().create_task(self._delete(item_id, pending_save))
        self._deletes[item_id] = task
        task.add_done_callback(lambda finished: self._forget(self._deletes, item_id, finished))
        return await asyncio.shield(task)

    # Remote input

    async def load(self, owner_id: Optional[str] = None) -> None:
        """Replace the collection with the backend's copy for ``owner_id``.

        Local state the backend may not have seen yet survives the load:
        gradings, resets and reconciled records made while the fetch was
        running, writes that are still pending or have failed, and any local
        record newer than its fetched copy. Failures are logged and exposed
        through :attr:`load_error`; nothing is raised.
        """
        if owner_id is not None and owner_id != self._owner_id:
            self._owner_id = owner_id
            self._records.clear()
            self._failed_writes.clear()
            self._tombstones.clear()
        self._is_loading = True
        self._load_error = None
        self._changed_during_load = set()

        try:
            fetched = await self._persistence.fetch_reviews(self._owner_id)
        except Exception as exc:
            LOGGER.exception("Failed to load reviews for owner %s.", self._owner_id)
            self._load_error = exc
            fetched = []

        records: Dict[str, ReviewRecord] = {}
        for remote in fetched:
            if self._is_acceptable(remote) and not self._was_reset_after(remote):
                records[remote.item_id] = remote

        unsynced = self._changed_during_load | self._failed_writes
        unsynced.update(item_id for item_id in self._saves if self.has_pending_write(item_id))
        for item_id, local in self._records.items():
            remote = records.get(item_id)
            if remote is None:
                if item_id in unsynced:
                    records[item_id] = local
            elif _is_newer(local, remote) or (item_id in unsynced and not _is_newer(remote, local)):
                records[item_id] = local

        self._records = records
        self._changed_during_load = None
        self._is_loading = False
        if self._load_error is None:
            LOGGER.info("Loaded %d review records for owner %s.", len(records), self._owner_id)
        self._emit(StoreChangeKind.LOADED)

    def reconcile(self, remote: ReviewRecord) -> bool:
        """Merge a record pushed by the backend using last-write-wins.

        The remote copy replaces local state only when its
        ``last_reviewed_at`` is strictly newer than both the local record and
        any reset of the same item. Returns whether it was applied.
        """
        if not self._is_acceptable(remote):
            return False

        remote_reviewed_at = ensure_aware(remote.last_reviewed_at)
        tombstone = self._tombstones.get(remote.item_id)
        if tombstone is not None and remote_reviewed_at <= tombstone:
            LOGGER.debug("Ignoring stale update for reset item %s.", remote.item_id)
            return False

        local = self._records.get(remote.item_id)
        if local is not None and not _is_newer(remote, local):
            return False

        pending = self._saves.pop(remote.item_id, None)
        if pending is not None and not pending.done():
            pending.cancel()

        self._records[remote.item_id] = remote
        self._tombstones.pop(remote.item_id, None)
        self._failed_writes.discard(remote.item_id)
        self._note_local_change(remote.item_id)
        self._emit(StoreChangeKind.RECONCILED, remote.item_id, remote)
        return True

    async def follow_updates(self) -> None:
        """Reconcile every record pushed by the backend until the stream ends."""
        try:
            async for remote in self._persistence.stream_updates(self._owner_id):
                self.reconcile(remote)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Review update stream for owner %s failed.", self._owner_id)

    # Background writes

    def retry_failed_writes(self) -> int:
        """Schedule another save for every item whose last write failed."""
        retried = 0
        for item_id in sorted(self._failed_writes):
            record = self._records.get(item_id)
            if record is None:
                continue
            self._schedule_save(record)
            retried += 1
        self._failed_writes.clear()
        return retried

    async def flush(self) -> None:
        """Wait until every background save and delete has finished."""
        while True:
            pending = [task for task in (*self._saves.values(), *self._deletes.values()) if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    def _is_acceptable(self, remote: ReviewRecord) -> bool:
        if remote.owner_id != self._owner_id:
            LOGGER.warning(
                "Ignoring review %s for owner %s while tracking owner %s.",
                remote.item_id,
                remote.owner_id,
                self._owner_id,
            )
            return False
        if remote.repetition_count < 1:
            LOGGER.warning("Ignoring review %s without any completed repetitions.", remote.item_id)
            return False
        if remote.last_reviewed_at is None:
            LOGGER.warning("Ignoring review %s without a review timestamp.", remote.item_id)
            return False
        return True

    def _note_local_change(self, item_id: str) -> None:
        if self._changed_during_load is not None:
            self._changed_during_load.add(item_id)

    def _was_reset_after(self, remote: ReviewRecord) -> bool:
        pending_delete = self._deletes.get(remote.item_id)
        if pending_delete is not None and not pending_delete.done():
            return True
        tombstone = self._tombstones.get(remote.item_id)
        return tombstone is not None and ensure_aware(remote.last_reviewed_at) <= tombstone

    def _schedule_save(self, record: ReviewRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning("No running event loop; deferring write for %s.", record.item_id)
            self._failed_writes.add(record.item_id)
            self._emit(StoreChangeKind.PERSIST_FAILED, record.item_id, record)
            return

        item_id = record.item_id
        previous = self._saves.get(item_id)
        task = loop.create_task(self._save(record, previous, self._deletes.get(item_id)))
        self._saves[item_id] = task
        task.add_done_callback(lambda finished: self._forget(self._saves, item_id, finished))

    async def _save(
        self,
        record: ReviewRecord,
        previous: Optional[asyncio.Task],
        pending_delete: Optional[asyncio.Task],
    ) -> None:
        if previous is not None and not previous.done():
            previous.cancel()
            await asyncio.wait({previous})
        if pending_delete is not None and not pending_delete.done():
            await asyncio.wait({pending_delete})

        try:
            await self._persistence.save_review(record)
        except Exception:
            LOGGER.exception("Failed to persist review for item %s.", record.item_id)
            if self._records.get(record.item_id) == record:
                self._failed_writes.add(record.item_id)
                self._emit(StoreChangeKind.PERSIST_FAILED, record.item_id, record)

    async def _delete(self, item_id: str, pending_save: Optional[asyncio.Task]) -> bool:
        if pending_save is not None and not pending_save.done():
            pending_save.cancel()
            await asyncio.wait({pending_save})

        try:
            deleted = bool(await self._persistence.delete_review(self._owner_id, item_id))
        except Exception:
            LOGGER.exception("Failed to delete review for item %s.", item_id)
            return False

        if not deleted:
            LOGGER.warning("Backend did not delete review for item %s.", item_id)
        return deleted

    @staticmethod
    def _forget(tasks: Dict[str, asyncio.Task], item_id: str, finished: asyncio.Task) -> None:
        if tasks.get(item_id) is finished:
            del tasks[item_id]


def _is_newer(candidate: ReviewRecord, current: ReviewRecord) -> bool:
    if candidate.last_reviewed_at is None:
        return False
    if current.last_reviewed_at is None:
        return True
    return ensure_aware(candidate.last_reviewed_at) > ensure_aware(current.last_reviewed_at)
