"""
Alembic environment for the venue ledger schema.

The URL comes from DATABASE_URL_SYNC (psycopg2); the application itself
talks to the same database through asyncpg. Autogenerate compares column
types and server defaults, since money columns are Numeric(12, 2) and the
status and version columns rely on server-side defaults.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from venue_ledger.core.config import get_settings
from venue_ledger.db.base import Base
import venue_ledger.models  # noqa: F401 - registers every table on Base.metadata

config = context.config
settings = get_settings()

config.set_main_option("sqlalchemy.url", settings.DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Created with raw SQL in 001 (GiST exclusion on bookings); not in the models
HAND_MANAGED = {"ex_bookings_no_overlap"}


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    return name not in HAND_MANAGED


def _configure_options() -> dict:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        "compare_server_default": True,
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
