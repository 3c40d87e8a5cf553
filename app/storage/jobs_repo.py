"""Storage interface for generation jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.jobs.models import GenerationJob, JobFilter, JobUpdate


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every read and write is scoped by tenant, except the worker-side claim
  operations which span all tenants by construction.
  """

  async def create(self, job: GenerationJob) -> GenerationJob:
    """Persist a queued job and return it with server timestamps applied."""

  async def get(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier within a tenant."""

  async def list(self, tenant_id: str, job_filter: JobFilter) -> tuple[list[GenerationJob], int]:
    """Return one page of jobs, newest first, and the total count."""

  async def claim_next(self, *, worker_id: str, stale_before: datetime) -> GenerationJob | None:
    """Atomically claim one queued job, or one processing job whose heartbeat is older than stale_before."""

  async def fail_stale(self, *, stale_before: datetime) -> list[GenerationJob]:
    """Fail processing jobs with an expired heartbeat that already used every retry."""

  async def update(self, tenant_id: str, job_id: str, *, worker_id: str, update: JobUpdate) -> GenerationJob | None:
    """Write job state if this worker still holds the claim on a processing row; None otherwise."""

  async def cancel(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    """Cancel a queued or processing job; None when the job is missing or already terminal."""

  async def requeue(self, tenant_id: str, job_id: str) -> GenerationJob | None:
    """Move a failed job under its retry cap back to queued; None when not eligible."""
