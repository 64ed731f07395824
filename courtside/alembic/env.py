"""
Alembic environment for the courtside schema.

Run from the ``courtside`` directory (``alembic upgrade head``) or call
``upgrade_to_head()`` from application code. The target database always
comes from ``courtside.database.db.DATABASE_URL`` so migrations and the
services agree on where the data lives.
"""

from logging.config import fileConfig
import asyncio
import logging
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import command, context
from alembic.config import Config

from courtside.database.db import Base, DATABASE_URL
from courtside.database import models  # noqa: F401

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"

target_metadata = Base.metadata


def _redacted(url: str) -> str:
    return url.split("@", 1)[1] if "@" in url else url


def _configure_offline(config: Config) -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_online(config: Config) -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = DATABASE_URL
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    except Exception as e:
        logger.error(f"Migration against {_redacted(DATABASE_URL)} failed: {e}", exc_info=True)
        raise
    finally:
        await engine.dispose()


async def upgrade_to_head() -> None:
    """Apply all pending migrations to DATABASE_URL."""
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    config.set_main_option("sqlalchemy.url", DATABASE_URL)
    # command.upgrade starts its own event loop for _run_online
    await asyncio.to_thread(command.upgrade, config, "head")
    logger.info(f"Database at {_redacted(DATABASE_URL)} is at head")


def _main() -> None:
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name, disable_existing_loggers=False)

    if context.is_offline_mode():
        _configure_offline(config)
    else:
        logger.info(f"Running migrations against {_redacted(DATABASE_URL)}")
        asyncio.run(_run_online(config))


# context.config only exists while Alembic is executing this script
if hasattr(context, "config"):
    _main()
