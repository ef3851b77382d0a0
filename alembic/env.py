"""Alembic environment for the Beatstore ledger schema.

The database URL comes from ``beatstore.config.settings`` unless a caller
passes one explicitly, either as ``config.attributes["database_url"]``
(programmatic runs such as the migration tests) or as
``alembic -x database_url=...`` on the command line.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from beatstore.config import settings

# Every model must be imported so Base.metadata is complete for autogenerate
from beatstore.models import *  # noqa: F401, F403
from beatstore.database import Base

config = context.config

if config.config_file_name is not None:
    # Keep the application's own loggers alive when migrations run in-process
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _database_url() -> str:
    explicit = config.attributes.get("database_url") or context.get_x_argument(as_dictionary=True).get("database_url")
    return explicit or settings.database_url


def _context_options(url: str) -> dict:
    """Options shared by offline and online runs.

    SQLite cannot ALTER most column or constraint definitions, so changes are
    rendered as batch (copy-and-move) operations there.  ``compare_type``
    makes autogenerate notice money precision and status length changes.
    """
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    url = _database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **_context_options(url))

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    url = _database_url()
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url
    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations, url)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
