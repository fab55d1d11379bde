"""Bootstrap logic for reporting a learner's review queue."""

from __future__ import annotations

import asyncio
import logging

from review_scheduler.app.settings import AppSettings
from review_scheduler.db import get_engine, get_session_factory, run_migrations_if_needed
from review_scheduler.db.reviews import SqlAlchemyReviewPersistence
from review_scheduler.scheduling import ReviewStats, ReviewStore


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


async def report_queue(settings: AppSettings, store: ReviewStore) -> ReviewStats:
    """Load the learner's collection and log its statistics and due queue."""
    await store.load(settings.owner_id)
    if store.load_error is not None:
        LOGGER.error("Review collection for %s could not be loaded.", settings.owner_id)

    stats = store.stats()
    LOGGER.info(
        "Owner %s: total=%d due=%d reviewed_today=%d learning=%d mature=%d.",
        settings.owner_id,
        stats.total,
        stats.due,
        stats.reviewed_today,
        stats.learning,
        stats.mature,
    )
    for record in store.due_items()[: settings.due_preview_size]:
        LOGGER.info(
            "Due %s since %s (interval %d days, ease %.2f).",
            record.item_id,
            record.due_at.isoformat(),
            record.interval_days,
            record.ease_factor,
        )
    return stats


def run_report(settings: AppSettings) -> ReviewStats:
    """Apply migrations and report the configured learner's review queue."""
    _configure_logging(settings.log_level)
    LOGGER.info("%s is running in %s mode.", settings.app_name, settings.app_env)

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    return asyncio.run(_report_and_dispose(settings))


async def _report_and_dispose(settings: AppSettings) -> ReviewStats:
    persistence = SqlAlchemyReviewPersistence(get_session_factory())
    store = ReviewStore(persistence, settings.owner_id, tz=settings.timezone)
    try:
        return await report_queue(settings, store)
    finally:
        await get_engine().dispose()
