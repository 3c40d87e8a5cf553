"""Retry and staleness policy for generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.errors import InvalidTransitionError, RetryLimitReachedError
from app.jobs.models import GenerationJob, JobStatus

DEFAULT_STALE_SECONDS = 900


@dataclass(frozen=True)
class RetryPolicy:
  """Failures never retry inside a claim. A failed job is re-enqueued only on request, up to its cap."""

  stale_seconds: int = DEFAULT_STALE_SECONDS

  def stale_before(self, now: datetime) -> datetime:
    """Heartbeats older than the returned instant mark a processing job as abandoned."""
    return now - timedelta(seconds=self.stale_seconds)

  def can_retry(self, job: GenerationJob) -> bool:
    return job.status == JobStatus.FAILED and job.retry_count < job.max_retries

  def ensure_retryable(self, job: GenerationJob) -> None:
    """Raise the error a retry request for this job should surface, if any."""
    if job.status != JobStatus.FAILED:
      raise InvalidTransitionError(f"Only failed jobs can be retried; job {job.id} is {job.status.value}.")
    if job.retry_count >= job.max_retries:
      raise RetryLimitReachedError(f"Job {job.id} already used {job.retry_count} of {job.max_retries} retries.")
