"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_STORAGE_BACKENDS = {"postgres", "memory"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the course generation engine."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  storage_backend: str
  worker_enabled: bool
  worker_poll_seconds: float
  claim_stale_seconds: int
  default_max_retries: int
  outline_chunks_per_source: int
  lesson_chunks_per_source: int
  gemini_api_key: str | None
  gemini_model: str
  knowledge_service_url: str | None
  audience_service_url: str | None
  notification_webhook_url: str | None
  cache_invalidation_url: str | None
  collaborator_timeout_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("COURSEGEN_ENV", "development").lower()

  # Toggle SQL echo and verbose diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))

  log_max_bytes = _positive_int("COURSEGEN_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("COURSEGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("COURSEGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  storage_backend = (os.getenv("COURSEGEN_STORAGE_BACKEND") or "postgres").strip().lower()
  if storage_backend not in _STORAGE_BACKENDS:
    raise ValueError(f"COURSEGEN_STORAGE_BACKEND must be one of {sorted(_STORAGE_BACKENDS)}.")

  worker_poll_seconds = float(os.getenv("COURSEGEN_WORKER_POLL_SECONDS", "5"))
  if worker_poll_seconds <= 0:
    raise ValueError("COURSEGEN_WORKER_POLL_SECONDS must be positive.")

  # Retries are capped per job; zero disables manual retries entirely.
  default_max_retries = int(os.getenv("COURSEGEN_DEFAULT_MAX_RETRIES", "3"))
  if default_max_retries < 0:
    raise ValueError("COURSEGEN_DEFAULT_MAX_RETRIES must be zero or a positive integer.")

  collaborator_timeout_seconds = float(os.getenv("COURSEGEN_COLLABORATOR_TIMEOUT_SECONDS", "10"))
  if collaborator_timeout_seconds <= 0:
    raise ValueError("COURSEGEN_COLLABORATOR_TIMEOUT_SECONDS must be positive.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("COURSEGEN_ALLOWED_ORIGINS")),
    debug=debug,
    log_dir=(os.getenv("COURSEGEN_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("COURSEGEN_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("COURSEGEN_PG_DSN") or os.getenv("DATABASE_URL"),
    storage_backend=storage_backend,
    worker_enabled=_parse_bool(os.getenv("COURSEGEN_WORKER_ENABLED"), default=True),
    worker_poll_seconds=worker_poll_seconds,
    claim_stale_seconds=_positive_int("COURSEGEN_CLAIM_STALE_SECONDS", "900"),
    default_max_retries=default_max_retries,
    outline_chunks_per_source=_positive_int("COURSEGEN_OUTLINE_CHUNKS_PER_SOURCE", "5"),
    lesson_chunks_per_source=_positive_int("COURSEGEN_LESSON_CHUNKS_PER_SOURCE", "3"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    gemini_model=(os.getenv("COURSEGEN_GEMINI_MODEL") or "gemini-2.5-flash").strip(),
    knowledge_service_url=_optional_str(os.getenv("COURSEGEN_KNOWLEDGE_SERVICE_URL")),
    audience_service_url=_optional_str(os.getenv("COURSEGEN_AUDIENCE_SERVICE_URL")),
    notification_webhook_url=_optional_str(os.getenv("COURSEGEN_NOTIFICATION_WEBHOOK_URL")),
    cache_invalidation_url=_optional_str(os.getenv("COURSEGEN_CACHE_INVALIDATION_URL")),
    collaborator_timeout_seconds=collaborator_timeout_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("COURSEGEN_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn)
