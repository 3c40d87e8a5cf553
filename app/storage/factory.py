from app.config import Settings
from app.storage.content_repo import ContentRepository
from app.storage.jobs_repo import JobsRepository
from app.storage.memory_content_repo import InMemoryContentRepository
from app.storage.memory_jobs_repo import InMemoryJobsRepository
from app.storage.postgres_content_repo import PostgresContentRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("COURSEGEN_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  if settings.storage_backend == "memory":
    return InMemoryJobsRepository()
  _require_dsn(settings)
  return PostgresJobsRepository()


def _get_content_repo(settings: Settings) -> ContentRepository:
  """Return the active content repository."""
  if settings.storage_backend == "memory":
    return InMemoryContentRepository()
  _require_dsn(settings)
  return PostgresContentRepository()
