"""In-process job repository for local development and tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from app.core.errors import ValidationError
from app.jobs.models import TERMINAL_STATUSES, WORKER_LOST_CODE, GenerationJob, JobFilter, JobStatus, JobUpdate, require_job_fields
from app.storage.jobs_repo import JobsRepository


def _utcnow() -> datetime:
  return datetime.now(UTC)


class InMemoryJobsRepository(JobsRepository):
  """Keep jobs in a dict; every mutation runs under one lock, which makes claims exclusive."""

  def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
    self._jobs: dict[str, GenerationJob] = {}
    self._lock = asyncio.Lock()
    self._clock = clock or _utcnow

  async def create(self, job: GenerationJob) -> GenerationJob:
    require_job_fields(job)
    now = self._clock()
    async with self._lock:
      if job.id in self._jobs:
        raise ValidationError(f"Job {job.id} already exists.")
      record = replace(job, status=JobStatus.QUEUED, progress_percent=0, tokens_used=0, retry_count=0, created_at=now, updated_at=now)
      self._jobs[job.id] = record
      return record

  async def get(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    record = self._jobs.get(job_id)
    if record is None or record.tenant_id != tenant_id:
      return None
    return record

  async def list(self, tenant_id: str, job_filter: JobFilter) -> tuple[list[GenerationJob], int]:
    matches = [
      job
      for job in self._jobs.values()
      if job.tenant_id == tenant_id
      and (job_filter.status is None or job.status == job_filter.status)
      and (job_filter.job_type is None or job.job_type == job_filter.job_type)
      and (job_filter.course_id is None or job.course_id == job_filter.course_id)
      and (job_filter.created_by_user_id is None or job.created_by_user_id == job_filter.created_by_user_id)
    ]
    matches.sort(key=lambda job: (job.created_at or datetime.min.replace(tzinfo=UTC), job.id), reverse=True)
    page = matches[job_filter.offset : job_filter.offset + job_filter.limit]
    return page, len(matches)

  async def claim_next(self, *, worker_id: str, stale_before: datetime) -> GenerationJob | None:
    async with self._lock:
      candidates = sorted(self._jobs.values(), key=lambda job: (job.created_at or datetime.min.replace(tzinfo=UTC), job.id))
      for job in candidates:
        reclaim = job.status == JobStatus.PROCESSING and job.heartbeat_at is not None and job.heartbeat_at < stale_before and job.retry_count < job.max_retries
        if job.status != JobStatus.QUEUED and not reclaim:
          continue
        now = self._clock()
        claimed = replace(
          job,
          status=JobStatus.PROCESSING,
          worker_id=worker_id,
          claimed_at=now,
          heartbeat_at=now,
          updated_at=now,
          started_at=job.started_at or now,
          retry_count=job.retry_count + 1 if reclaim else job.retry_count,
        )
        self._jobs[job.id] = claimed
        return claimed
    return None

  async def fail_stale(self, *, stale_before: datetime) -> list[GenerationJob]:
    failed: list[GenerationJob] = []
    async with self._lock:
      for job in list(self._jobs.values()):
        if job.status != JobStatus.PROCESSING or job.heartbeat_at is None or job.heartbeat_at >= stale_before or job.retry_count < job.max_retries:
          continue
        now = self._clock()
        record = replace(job, status=JobStatus.FAILED, error_message="Worker stopped reporting progress and the retry limit was reached.", error_code=WORKER_LOST_CODE, completed_at=now, updated_at=now)
        self._jobs[job.id] = record
        failed.append(record)
    return failed

  async def update(self, tenant_id: str, job_id: str, *, worker_id: str, update: JobUpdate) -> GenerationJob | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.tenant_id != tenant_id or job.status != JobStatus.PROCESSING or job.worker_id != worker_id:
        return None
      now = self._clock()
      record = replace(
        job,
        status=update.status,
        sub_state=update.sub_state,
        progress_percent=max(job.progress_percent, update.progress_percent),
        progress_message=update.progress_message,
        tokens_used=max(job.tokens_used, update.tokens_used),
        result_json=update.result_json if update.result_json is not None else job.result_json,
        error_message=update.error_message if update.status == JobStatus.FAILED else job.error_message,
        error_code=update.error_code if update.status == JobStatus.FAILED else job.error_code,
        completed_at=now if update.status in TERMINAL_STATUSES else job.completed_at,
        heartbeat_at=now,
        updated_at=now,
      )
      self._jobs[job_id] = record
      return record

  async def cancel(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.tenant_id != tenant_id or not job.is_cancellable:
        return None
      now = self._clock()
      record = replace(job, status=JobStatus.CANCELLED, progress_message="Cancelled by user", started_at=job.started_at or now, completed_at=now, updated_at=now)
      self._jobs[job_id] = record
      return record

  async def requeue(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.tenant_id != tenant_id or job.status != JobStatus.FAILED or job.retry_count >= job.max_retries:
        return None
      now = self._clock()
      record = replace(job, status=JobStatus.QUEUED, retry_count=job.retry_count + 1, sub_state=None, worker_id=None, error_message=None, error_code=None, completed_at=None, progress_message="Queued for retry", updated_at=now)
      self._jobs[job_id] = record
      return record
