"""
Alembic environment configuration.

Run by Alembic for every migration command. Connects with the same
DATABASE_URL as the services and targets faultline's model metadata.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from faultline.core.config import settings
from faultline.core.db import Base

# Registers every table with Base.metadata
import faultline.models  # noqa: F401

# =============================================================================
# ALEMBIC CONFIG
# =============================================================================

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """Database URL from the application settings, not alembic.ini."""
    return settings.database_url


# =============================================================================
# MIGRATION FUNCTIONS
# =============================================================================


def run_migrations_offline() -> None:
    """
    Emit SQL without connecting.

    Usage: alembic upgrade head --sql > migration.sql
    """
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Connect and migrate. psycopg 3 drives both sync and async engines."""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
