"""Alembic environment for the review_states schema.

Runs against the async engine used by the application. When invoked from
``review_scheduler.db.run_migrations`` logging is left to the caller.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from review_scheduler.db import Base, get_database_url


config = context.config

if config.config_file_name and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _review_database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_url()


def _configure_context(url: str, **kwargs) -> None:
    # SQLite cannot ALTER most columns in place; batch mode rebuilds the table.
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the review schema as SQL without connecting."""
    url = _review_database_url()
    _configure_context(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})

    with context.begin_transaction():
        context.run_migrations()


def _migrate_review_schema(connection: Connection, url: str) -> None:
    _configure_context(url, connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Upgrade the review schema over an async connection."""
    url = _review_database_url()
    engine_options = dict(config.get_section(config.config_ini_section) or {})
    engine_options["sqlalchemy.url"] = url

    engine = async_engine_from_config(engine_options, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate_review_schema, url)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
