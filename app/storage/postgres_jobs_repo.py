"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Select, Update, and_, func, or_, select
from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import CANCELLABLE_STATUSES, TERMINAL_STATUSES, WORKER_LOST_CODE, GenerationJob, JobFilter, JobStatus, JobType, JobUpdate, SubState, require_job_fields
from app.schema.jobs import GenerationJobRow
from app.storage.db_retry import execute_with_retry
from app.storage.jobs_repo import JobsRepository


def _utcnow() -> datetime:
  return datetime.now(UTC)


def build_claim_statement(stale_before: datetime) -> Select[tuple[str, str]]:
  """Select the oldest claimable job, skipping rows other workers have locked."""
  queued = GenerationJobRow.status == JobStatus.QUEUED.value
  stale = and_(GenerationJobRow.status == JobStatus.PROCESSING.value, GenerationJobRow.heartbeat_at < stale_before, GenerationJobRow.retry_count < GenerationJobRow.max_retries)
  return select(GenerationJobRow.id, GenerationJobRow.status).where(or_(queued, stale)).order_by(GenerationJobRow.created_at, GenerationJobRow.id).with_for_update(skip_locked=True).limit(1)


def build_cancel_statement(tenant_id: str, job_id: str, now: datetime) -> Update:
  """Cancel a queued or processing job that has not started storing output; a job cancelled before any claim still gets a start time."""
  before_storing = or_(GenerationJobRow.sub_state.is_(None), GenerationJobRow.sub_state != SubState.STORING.value)
  return (
    sql_update(GenerationJobRow)
    .where(GenerationJobRow.id == job_id, GenerationJobRow.tenant_id == tenant_id, GenerationJobRow.status.in_([status.value for status in CANCELLABLE_STATUSES]), before_storing)
    .values(status=JobStatus.CANCELLED.value, progress_message="Cancelled by user", started_at=func.coalesce(GenerationJobRow.started_at, now), completed_at=now, updated_at=now)
    .returning(GenerationJobRow)
    .execution_options(synchronize_session=False)
  )


class PostgresJobsRepository(JobsRepository):
  """Persist generation jobs to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create(self, job: GenerationJob) -> GenerationJob:
    require_job_fields(job)

    async def _create() -> GenerationJob:
      async with self._session_factory() as session:
        row = GenerationJobRow(
          id=job.id,
          tenant_id=job.tenant_id,
          job_type=job.job_type.value,
          status=JobStatus.QUEUED.value,
          course_id=job.course_id,
          outline_lesson_id=job.outline_lesson_id,
          generation_input_id=job.generation_input_id,
          created_by_user_id=job.created_by_user_id,
          progress_percent=0,
          progress_message=job.progress_message,
          tokens_used=0,
          max_retries=job.max_retries,
          retry_count=0,
        )
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.create", func=_create, max_attempts=1)

  async def get(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    async def _get() -> GenerationJob | None:
      async with self._session_factory() as session:
        stmt = select(GenerationJobRow).where(GenerationJobRow.id == job_id, GenerationJobRow.tenant_id == tenant_id)
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
          return None
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.get", func=_get)

  async def list(self, tenant_id: str, job_filter: JobFilter) -> tuple[list[GenerationJob], int]:
    async def _list() -> tuple[list[GenerationJob], int]:
      async with self._session_factory() as session:
        filters: list[Any] = [GenerationJobRow.tenant_id == tenant_id]
        if job_filter.status is not None:
          filters.append(GenerationJobRow.status == job_filter.status.value)
        if job_filter.job_type is not None:
          filters.append(GenerationJobRow.job_type == job_filter.job_type.value)
        if job_filter.course_id is not None:
          filters.append(GenerationJobRow.course_id == job_filter.course_id)
        if job_filter.created_by_user_id is not None:
          filters.append(GenerationJobRow.created_by_user_id == job_filter.created_by_user_id)

        total = (await session.execute(select(func.count()).select_from(GenerationJobRow).where(*filters))).scalar_one()
        stmt = select(GenerationJobRow).where(*filters).order_by(GenerationJobRow.created_at.desc(), GenerationJobRow.id).offset(job_filter.offset).limit(job_filter.limit)
        rows = (await session.execute(stmt)).scalars().all()
        return [self._model_to_record(row) for row in rows], int(total)

    return await execute_with_retry(operation_name="jobs.list", func=_list)

  async def claim_next(self, *, worker_id: str, stale_before: datetime) -> GenerationJob | None:
    async def _claim() -> GenerationJob | None:
      async with self._session_factory() as session:
        async with session.begin():
          candidate = (await session.execute(build_claim_statement(stale_before))).first()
          if candidate is None:
            return None

          now = _utcnow()
          observed_status = candidate.status
          values: dict[str, Any] = {"status": JobStatus.PROCESSING.value, "worker_id": worker_id, "claimed_at": now, "heartbeat_at": now, "updated_at": now, "started_at": func.coalesce(GenerationJobRow.started_at, now)}
          # Reclaiming a dead worker's job spends one retry.
          if observed_status == JobStatus.PROCESSING.value:
            values["retry_count"] = GenerationJobRow.retry_count + 1

          # Conditional update: the row must still be in the status we locked it in.
          stmt = sql_update(GenerationJobRow).where(GenerationJobRow.id == candidate.id, GenerationJobRow.status == observed_status).values(**values).returning(GenerationJobRow).execution_options(synchronize_session=False)
          row = (await session.execute(stmt)).scalar_one_or_none()
          if row is None:
            return None
          return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.claim_next", func=_claim)

  async def fail_stale(self, *, stale_before: datetime) -> list[GenerationJob]:
    async def _fail() -> list[GenerationJob]:
      async with self._session_factory() as session:
        now = _utcnow()
        stmt = (
          sql_update(GenerationJobRow)
          .where(GenerationJobRow.status == JobStatus.PROCESSING.value, GenerationJobRow.heartbeat_at < stale_before, GenerationJobRow.retry_count >= GenerationJobRow.max_retries)
          .values(status=JobStatus.FAILED.value, error_message="Worker stopped reporting progress and the retry limit was reached.", error_code=WORKER_LOST_CODE, completed_at=now, updated_at=now)
          .returning(GenerationJobRow)
          .execution_options(synchronize_session=False)
        )
        rows = (await session.execute(stmt)).scalars().all()
        await session.commit()
        return [self._model_to_record(row) for row in rows]

    return await execute_with_retry(operation_name="jobs.fail_stale", func=_fail)

  async def update(self, tenant_id: str, job_id: str, *, worker_id: str, update: JobUpdate) -> GenerationJob | None:
    async def _update() -> GenerationJob | None:
      async with self._session_factory() as session:
        now = _utcnow()
        values: dict[str, Any] = {
          "status": update.status.value,
          "sub_state": update.sub_state.value if update.sub_state else None,
          # Progress never moves backwards, even if a stale write arrives late.
          "progress_percent": func.greatest(GenerationJobRow.progress_percent, update.progress_percent),
          "progress_message": update.progress_message,
          "tokens_used": func.greatest(GenerationJobRow.tokens_used, update.tokens_used),
          "heartbeat_at": now,
          "updated_at": now,
        }
        if update.result_json is not None:
          values["result_json"] = update.result_json
        if update.status == JobStatus.FAILED:
          values["error_message"] = update.error_message
          values["error_code"] = update.error_code
        if update.status in TERMINAL_STATUSES:
          values["completed_at"] = now

        stmt = (
          sql_update(GenerationJobRow)
          .where(GenerationJobRow.id == job_id, GenerationJobRow.tenant_id == tenant_id, GenerationJobRow.status == JobStatus.PROCESSING.value, GenerationJobRow.worker_id == worker_id)
          .values(**values)
          .returning(GenerationJobRow)
          .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        if row is None:
          return None
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.update", func=_update)

  async def cancel(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    async def _cancel() -> GenerationJob | None:
      async with self._session_factory() as session:
        row = (await session.execute(build_cancel_statement(tenant_id, job_id, _utcnow()))).scalar_one_or_none()
        await session.commit()
        if row is None:
          return None
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.cancel", func=_cancel)

  async def requeue(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    async def _requeue() -> GenerationJob | None:
      async with self._session_factory() as session:
        now = _utcnow()
        stmt = (
          sql_update(GenerationJobRow)
          .where(GenerationJobRow.id == job_id, GenerationJobRow.tenant_id == tenant_id, GenerationJobRow.status == JobStatus.FAILED.value, GenerationJobRow.retry_count < GenerationJobRow.max_retries)
          .values(status=JobStatus.QUEUED.value, retry_count=GenerationJobRow.retry_count + 1, sub_state=None, worker_id=None, error_message=None, error_code=None, completed_at=None, progress_message="Queued for retry", updated_at=now)
          .returning(GenerationJobRow)
          .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        if row is None:
          return None
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.requeue", func=_requeue)

  def _model_to_record(self, row: GenerationJobRow) -> GenerationJob:
    return GenerationJob(
      id=row.id,
      tenant_id=row.tenant_id,
      job_type=JobType(row.job_type),
      created_by_user_id=row.created_by_user_id,
      status=JobStatus(row.status),
      course_id=row.course_id,
      outline_lesson_id=row.outline_lesson_id,
      generation_input_id=row.generation_input_id,
      sub_state=SubState(row.sub_state) if row.sub_state else None,
      progress_percent=row.progress_percent,
      progress_message=row.progress_message,
      tokens_used=row.tokens_used,
      error_message=row.error_message,
      error_code=row.error_code,
      result_json=row.result_json,
      max_retries=row.max_retries,
      retry_count=row.retry_count,
      worker_id=row.worker_id,
      created_at=row.created_at,
      started_at=row.started_at,
      claimed_at=row.claimed_at,
      heartbeat_at=row.heartbeat_at,
      completed_at=row.completed_at,
      updated_at=row.updated_at,
    )
