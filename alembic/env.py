import asyncio
import logging
from logging.config import fileConfig
from time import perf_counter

from sqlalchemy import pool, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

config = context.config

if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Row classes register themselves on Base.metadata at import.
import app.schema  # noqa: E402, F401
from app.core.database import DATABASE_URL, Base  # noqa: E402

target_metadata = Base.metadata

# Every engine replica may run migrations on boot; one advisory lock serializes them.
MIGRATION_LOCK_KEY = 0x636F7572  # "cour"

logger = logging.getLogger("alembic.runtime.migration")


def _require_url() -> str:
  if not DATABASE_URL:
    raise RuntimeError("COURSEGEN_PG_DSN must be set to run migrations.")
  return DATABASE_URL


class _RevisionTimer:
  """Log how long each applied revision took."""

  def __init__(self) -> None:
    self._started = perf_counter()

  def __call__(self, *, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
    now = perf_counter()
    revision = getattr(step, "up_revision_id", None) or "unknown"
    logger.info("Applied migration %s in %.3fs", revision, now - self._started)
    self._started = now


def run_migrations_offline() -> None:
  """Emit SQL for the configured database without connecting."""
  context.configure(url=_require_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"}, compare_type=True)

  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata, compare_type=True, on_version_apply=_RevisionTimer())
  migration_context = context.get_context()
  heads = migration_context.script.get_heads() if migration_context.script else []
  logger.info("Migrating generation tables from %s to %s", migration_context.get_current_revision() or "base", ", ".join(heads) or "none")

  with context.begin_transaction():
    # Released automatically when the migration transaction ends.
    connection.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": MIGRATION_LOCK_KEY})
    context.run_migrations()

  logger.info("Generation tables at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  """Run migrations with the asyncpg driver the engine uses at runtime."""
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = _require_url()
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)

  await connectable.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_async_migrations())
