"""Transient-failure retries for store operations, converting driver errors into StoreError."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from app.core.errors import StoreError

T = TypeVar("T")
logger = logging.getLogger(__name__)

_RETRYABLE_SQLSTATES = {"40001": "serialization_conflict", "40P01": "deadlock"}
_CONNECTIVITY_HINTS = ("connection", "timeout", "reset", "network", "broken pipe")


@dataclass(frozen=True)
class DBFailureClassification:
  retryable: bool
  category: str
  sqlstate: str | None


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    # asyncpg exposes sqlstate, psycopg exposes pgcode.
    for attr in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attr, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify a database failure as retryable or permanent.

  Serialization failures, deadlocks and dropped connections are retried.
  Integrity, schema and permission errors are not.
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate in _RETRYABLE_SQLSTATES:
    return DBFailureClassification(retryable=True, category=_RETRYABLE_SQLSTATES[sqlstate], sqlstate=sqlstate)

  if isinstance(exc, IntegrityError) or (sqlstate and sqlstate.startswith("23")):
    return DBFailureClassification(retryable=False, category="integrity_error", sqlstate=sqlstate)

  if sqlstate and sqlstate[:2] in {"42", "28"}:
    return DBFailureClassification(retryable=False, category="schema_or_permission_error", sqlstate=sqlstate)

  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in _CONNECTIVITY_HINTS):
      return DBFailureClassification(retryable=True, category="connectivity_error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, category="operational_error_unknown", sqlstate=sqlstate)

  return DBFailureClassification(retryable=False, category=f"unknown_error:{type(exc).__name__}", sqlstate=sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 2, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000, output_lost: bool = False) -> T:
  """
  Run an idempotent store operation, retrying transient database failures.

  Any SQLAlchemy error that survives the retries is raised as StoreError. When
  output_lost is set, the error states that provider output may have been lost.
  """
  attempt = 0

  while True:
    attempt += 1

    try:
      result = await func()
      if attempt > 1:
        logger.info("DB operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
      return result

    except SQLAlchemyError as exc:
      classification = classify_db_failure(exc)
      logger.warning("DB operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s", operation_name, attempt, max_attempts, classification.category, classification.sqlstate or "none", classification.retryable, exc_info=not classification.retryable)

      if not classification.retryable or attempt >= max_attempts:
        raise StoreError(f"Store operation '{operation_name}' failed ({classification.category}).", output_lost=output_lost) from exc

      # Exponential backoff with +/-25% jitter.
      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      backoff_ms += random.uniform(-backoff_ms * 0.25, backoff_ms * 0.25)
      await asyncio.sleep(backoff_ms / 1000.0)
