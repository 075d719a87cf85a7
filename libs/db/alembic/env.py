# ruff: noqa: I001
"""
Alembic configuration for the `db` library.

The database URL is injected from the `DATABASE_URL` environment variable at
runtime (a workspace `.env` is honored) and both offline and online
migrations are supported. `target_metadata` points at `db.metadata` so
autogenerate sees the account/transaction models.
"""

from __future__ import annotations

import os
import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import load_dotenv, find_dotenv


# Alembic Config object, which provides access to the values within
# the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# `find_dotenv(usecwd=True)` discovers `/repo/.env` whether Alembic runs from
# the repo root or from inside libs/db.
dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path=dotenv_path, override=False)

# Normalize and validate database URL from environment or INI (env wins).
db_url_maybe = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if db_url_maybe is None or db_url_maybe == "":
    raise RuntimeError(
        "DATABASE_URL is not set. Provide it via environment or set "
        "'sqlalchemy.url' in alembic.ini."
    )
db_url: str = db_url_maybe

config.set_main_option("sqlalchemy.url", db_url)
config.set_section_option(config.config_ini_section, "sqlalchemy.url", db_url)

logger = logging.getLogger("alembic.env")

try:  # pragma: no cover - import side effects only
    import db as _db_pkg

    target_metadata = getattr(_db_pkg, "metadata", None)
except ImportError as exc:  # pragma: no cover - package not installed
    logger.warning(
        "Could not import db.metadata for autogenerate; falling back to None. "
        "Install the workspace (pip install -e .) to enable autogenerate. Error: %s",
        exc,
    )
    target_metadata = None


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = db_url
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
