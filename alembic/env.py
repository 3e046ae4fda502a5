"""
Alembic environment configuration for Club Scheduler.

Runs migrations against the database configured in application settings.
"""

import logging
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from club_scheduler.config import get_settings
from club_scheduler.models.base import Base

# Every model must be imported for autogenerate to see its table
from club_scheduler.models.organization import Team  # noqa: F401
from club_scheduler.models.resources import Location, Resource, ResourceBooking  # noqa: F401
from club_scheduler.models.recurrence import RecurrenceRule  # noqa: F401
from club_scheduler.models.events import Event, EventParticipant  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Settings win over alembic.ini
settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit migration SQL for the configured URL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite ALTER TABLE
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations over a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    logger.info("Running migrations offline")
    run_migrations_offline()
else:
    logger.info(f"Running migrations online against {'PostgreSQL' if settings.uses_postgresql else 'SQLite'}")
    run_migrations_online()
