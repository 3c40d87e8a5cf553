from datetime import UTC, datetime

from sqlalchemy.dialects import postgresql

from app.storage.postgres_jobs_repo import build_cancel_statement, build_claim_statement


def test_claim_statement_skips_locked_rows() -> None:
  statement = build_claim_statement(datetime(2026, 1, 1, tzinfo=UTC))
  sql = str(statement.compile(dialect=postgresql.dialect()))
  assert "FOR UPDATE SKIP LOCKED" in sql
  assert "LIMIT" in sql
  assert "ORDER BY generation_jobs.created_at, generation_jobs.id" in sql


def test_claim_statement_only_reclaims_stale_jobs_under_retry_cap() -> None:
  sql = str(build_claim_statement(datetime(2026, 1, 1, tzinfo=UTC)).compile(dialect=postgresql.dialect()))
  assert "generation_jobs.heartbeat_at <" in sql
  assert "generation_jobs.retry_count < generation_jobs.max_retries" in sql


def test_cancel_statement_stamps_started_at_only_when_missing() -> None:
  sql = str(build_cancel_statement("tenant-1", "job-1", datetime(2026, 1, 1, tzinfo=UTC)).compile(dialect=postgresql.dialect()))
  assert "coalesce(generation_jobs.started_at" in sql
  assert "generation_jobs.tenant_id =" in sql
  assert "generation_jobs.status IN" in sql
  assert "RETURNING" in sql
  assert "generation_jobs.sub_state IS NULL OR generation_jobs.sub_state !=" in sql
