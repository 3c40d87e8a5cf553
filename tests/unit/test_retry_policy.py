from datetime import UTC, datetime, timedelta

import pytest

from app.core.errors import InvalidTransitionError, RetryLimitReachedError
from app.jobs.models import GenerationJob, JobStatus, JobType
from app.jobs.retry import RetryPolicy


def _job(status: JobStatus, *, retry_count: int = 0, max_retries: int = 3) -> GenerationJob:
  return GenerationJob(id="job-1", tenant_id="tenant-1", job_type=JobType.OUTLINE, created_by_user_id="user-1", status=status, retry_count=retry_count, max_retries=max_retries)


def test_stale_before_uses_window() -> None:
  now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
  assert RetryPolicy().stale_before(now) == now - timedelta(seconds=900)
  assert RetryPolicy(stale_seconds=60).stale_before(now) == now - timedelta(seconds=60)


def test_only_failed_jobs_under_cap_can_retry() -> None:
  policy = RetryPolicy()
  assert policy.can_retry(_job(JobStatus.FAILED))
  assert not policy.can_retry(_job(JobStatus.FAILED, retry_count=3))
  assert not policy.can_retry(_job(JobStatus.COMPLETED))


@pytest.mark.parametrize("status", [JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.CANCELLED])
def test_ensure_retryable_rejects_non_failed(status: JobStatus) -> None:
  with pytest.raises(InvalidTransitionError):
    RetryPolicy().ensure_retryable(_job(status))


def test_ensure_retryable_rejects_exhausted_job() -> None:
  with pytest.raises(RetryLimitReachedError):
    RetryPolicy().ensure_retryable(_job(JobStatus.FAILED, retry_count=2, max_retries=2))
