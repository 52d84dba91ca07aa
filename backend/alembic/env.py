"""
Migration environment for the visits schema.

The database URL comes from visitrank's Settings (DATABASE_URL / .env) unless
one is passed on the command line:

  cd backend
  alembic upgrade head
  alembic -x url=postgresql://... upgrade head
"""
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Running from backend/ without an installed package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from visitrank.core.config import settings  # noqa: E402
from visitrank.db.models import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("url") or settings.DATABASE_URL


def _configure_kwargs() -> dict:
    # Enum and float/integer rating columns must be diffed by type too
    return {"target_metadata": Base.metadata, "compare_type": True}


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
