"""Alembic environment for the overlay and usage-ledger tables.

The engine owns only ``cie_``-prefixed tables. Autogenerate ignores every
other table in a shared database, and the revision marker lives in
``cie_alembic_version`` so it never collides with another service's history.
SQLite targets (local runs, tests) are migrated in batch mode.
"""

import asyncio
from typing import Any

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from client_intel.core.models import VERSION_TABLE, Base, is_engine_table
from client_intel.observability import configure_logging, get_logger
from client_intel.settings import Settings

settings = Settings()
configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)

config = context.config
target_metadata = Base.metadata


def _database_url() -> str:
    url = settings.database_url or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("CLIENT_INTEL_DATABASE_URL is not set")
    return url


def _include_name(name: str | None, type_: str, parent_names: dict[str, Any]) -> bool:
    if type_ == "table":
        return is_engine_table(name)
    return True


def _configure(url: str, **kwargs: Any) -> None:
    context.configure(
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        include_name=_include_name,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    url = _database_url()
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    logger.info("migrations_offline_started", dialect=url.split(":", 1)[0])
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection, url: str) -> None:
    _configure(url, connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    url = _database_url()
    engine = create_async_engine(url)
    logger.info("migrations_online_started", dialect=engine.dialect.name)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection, url)
    finally:
        await engine.dispose()
    logger.info("migrations_online_completed")


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
