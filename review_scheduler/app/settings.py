"""Configuration helpers for the review scheduler runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_TIMEZONE = "UTC"
DEFAULT_DUE_PREVIEW_SIZE = 10


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    database_url: str
    owner_id: str
    stats_timezone: str
    due_preview_size: int

    @property
    def timezone(self) -> ZoneInfo:
        """Zone used for calendar-day comparisons in review statistics."""
        return ZoneInfo(self.stats_timezone)

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Review Scheduler")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        database_url = os.getenv("DATABASE_URL")
        owner_id = os.getenv("REVIEW_OWNER_ID")

        if not database_url:
            raise RuntimeError("DATABASE_URL environment variable is required to connect to the database.")

        if not owner_id:
            raise RuntimeError("REVIEW_OWNER_ID environment variable is required to load a review collection.")

        stats_timezone = os.getenv("STATS_TIMEZONE", DEFAULT_TIMEZONE)
        try:
            ZoneInfo(stats_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise RuntimeError(f"STATS_TIMEZONE must be a valid IANA time zone, got {stats_timezone!r}.") from exc

        try:
            due_preview_size = int(os.getenv("DUE_PREVIEW_SIZE", str(DEFAULT_DUE_PREVIEW_SIZE)))
        except ValueError as exc:
            raise RuntimeError("DUE_PREVIEW_SIZE must be an integer.") from exc

        if due_preview_size < 0:
            raise RuntimeError("DUE_PREVIEW_SIZE must not be negative.")

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            database_url=database_url,
            owner_id=owner_id,
            stats_timezone=stats_timezone,
            due_preview_size=due_preview_size,
        )
