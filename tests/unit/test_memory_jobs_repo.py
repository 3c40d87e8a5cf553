from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from app.core.errors import ValidationError
from app.jobs.models import WORKER_LOST_CODE, GenerationJob, JobFilter, JobStatus, JobType, JobUpdate, SubState
from app.storage.memory_jobs_repo import InMemoryJobsRepository
from tests.fakes import FakeClock


def _job(job_id: str, *, tenant_id: str = "tenant-1", max_retries: int = 3, **kwargs) -> GenerationJob:
  return GenerationJob(id=job_id, tenant_id=tenant_id, job_type=JobType.OUTLINE, created_by_user_id="user-1", course_id="course-1", generation_input_id="input-1", max_retries=max_retries, **kwargs)


def _stale_before(clock: FakeClock) -> datetime:
  return clock() - timedelta(seconds=900)


@pytest.mark.anyio
async def test_create_rejects_lesson_job_without_outline_lesson(jobs_repo: InMemoryJobsRepository) -> None:
  job = GenerationJob(id="job-1", tenant_id="tenant-1", job_type=JobType.LESSON_CONTENT, created_by_user_id="user-1")
  with pytest.raises(ValidationError):
    await jobs_repo.create(job)


@pytest.mark.anyio
async def test_get_is_tenant_scoped(jobs_repo: InMemoryJobsRepository) -> None:
  await jobs_repo.create(_job("job-1"))
  assert await jobs_repo.get("tenant-1", "job-1") is not None
  assert await jobs_repo.get("tenant-2", "job-1") is None


@pytest.mark.anyio
async def test_concurrent_claims_have_a_single_winner(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  stale_before = _stale_before(clock)
  results = await asyncio.gather(*(jobs_repo.claim_next(worker_id=f"worker-{index}", stale_before=stale_before) for index in range(5)))
  winners = [job for job in results if job is not None]
  assert len(winners) == 1
  assert winners[0].status == JobStatus.PROCESSING
  assert winners[0].retry_count == 0


@pytest.mark.anyio
async def test_claim_takes_oldest_queued_job_first(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-b"))
  clock.advance(1)
  await jobs_repo.create(_job("job-a"))
  claimed = await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  assert claimed is not None and claimed.id == "job-b"


@pytest.mark.anyio
async def test_stale_processing_job_is_reclaimed_with_retry_increment(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  first = await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  assert first is not None

  # A fresh heartbeat keeps the claim exclusive.
  assert await jobs_repo.claim_next(worker_id="worker-2", stale_before=_stale_before(clock)) is None

  clock.advance(901)
  second = await jobs_repo.claim_next(worker_id="worker-2", stale_before=_stale_before(clock))
  assert second is not None
  assert second.worker_id == "worker-2"
  assert second.retry_count == 1
  assert first.started_at is not None
  assert second.started_at == first.started_at


@pytest.mark.anyio
async def test_fail_stale_marks_jobs_at_retry_cap_as_worker_lost(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1", max_retries=0))
  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  clock.advance(901)

  assert await jobs_repo.claim_next(worker_id="worker-2", stale_before=_stale_before(clock)) is None
  failed = await jobs_repo.fail_stale(stale_before=_stale_before(clock))
  assert [job.id for job in failed] == ["job-1"]
  assert failed[0].status == JobStatus.FAILED
  assert failed[0].error_code == WORKER_LOST_CODE
  assert failed[0].completed_at == clock()


@pytest.mark.anyio
async def test_update_requires_matching_worker_and_processing_status(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  update = JobUpdate(status=JobStatus.PROCESSING, sub_state=SubState.GENERATING, progress_percent=40, progress_message="Generating", tokens_used=10)

  assert await jobs_repo.update("tenant-1", "job-1", worker_id="worker-2", update=update) is None
  assert await jobs_repo.update("tenant-2", "job-1", worker_id="worker-1", update=update) is None

  clock.advance(5)
  record = await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=update)
  assert record is not None
  assert record.progress_percent == 40
  assert record.heartbeat_at == clock()


@pytest.mark.anyio
async def test_update_never_moves_progress_or_tokens_backwards(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=JobUpdate(status=JobStatus.PROCESSING, sub_state=SubState.STORING, progress_percent=70, progress_message="Storing", tokens_used=300))
  record = await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=JobUpdate(status=JobStatus.PROCESSING, sub_state=SubState.GENERATING, progress_percent=40, progress_message="Generating", tokens_used=100))
  assert record is not None
  assert record.progress_percent == 70
  assert record.tokens_used == 300


@pytest.mark.anyio
async def test_cancel_blocks_further_worker_updates(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  cancelled = await jobs_repo.cancel("tenant-1", "job-1")
  assert cancelled is not None and cancelled.status == JobStatus.CANCELLED

  update = JobUpdate(status=JobStatus.COMPLETED, sub_state=None, progress_percent=100, progress_message="Done")
  assert await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=update) is None
  assert await jobs_repo.cancel("tenant-1", "job-1") is None


@pytest.mark.anyio
async def test_cancel_before_claim_stamps_started_at(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  queued = await jobs_repo.create(_job("job-1"))
  assert queued.started_at is None

  clock.advance(3)
  cancelled = await jobs_repo.cancel("tenant-1", "job-1")
  assert cancelled is not None and cancelled.status == JobStatus.CANCELLED
  assert cancelled.started_at == clock()
  assert cancelled.completed_at == clock()


@pytest.mark.anyio
async def test_cancel_after_claim_keeps_original_started_at(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  claimed = await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  assert claimed is not None and claimed.started_at == clock()

  clock.advance(30)
  cancelled = await jobs_repo.cancel("tenant-1", "job-1")
  assert cancelled is not None
  assert cancelled.started_at == claimed.started_at


@pytest.mark.anyio
async def test_cancel_is_refused_once_job_is_storing(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1"))
  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  storing = JobUpdate(status=JobStatus.PROCESSING, sub_state=SubState.STORING, progress_percent=70, progress_message="Storing")
  await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=storing)

  assert await jobs_repo.cancel("tenant-1", "job-1") is None
  record = await jobs_repo.get("tenant-1", "job-1")
  assert record is not None and record.status == JobStatus.PROCESSING
  assert not record.is_cancellable


@pytest.mark.anyio
async def test_requeue_only_failed_jobs_under_cap(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  await jobs_repo.create(_job("job-1", max_retries=1))
  assert await jobs_repo.requeue("tenant-1", "job-1") is None

  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  failure = JobUpdate(status=JobStatus.FAILED, sub_state=SubState.GENERATING, progress_percent=40, progress_message="Generation failed", error_message="boom", error_code="PROVIDER_ERROR")
  await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=failure)

  requeued = await jobs_repo.requeue("tenant-1", "job-1")
  assert requeued is not None
  assert requeued.status == JobStatus.QUEUED
  assert requeued.retry_count == 1
  assert requeued.error_code is None
  assert requeued.worker_id is None

  await jobs_repo.claim_next(worker_id="worker-1", stale_before=_stale_before(clock))
  await jobs_repo.update("tenant-1", "job-1", worker_id="worker-1", update=failure)
  assert await jobs_repo.requeue("tenant-1", "job-1") is None


@pytest.mark.anyio
async def test_list_filters_and_pages_newest_first(jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  for index in range(3):
    await jobs_repo.create(_job(f"job-{index}"))
    clock.advance(1)
  await jobs_repo.create(_job("other-tenant", tenant_id="tenant-2"))

  page, total = await jobs_repo.list("tenant-1", JobFilter(limit=2, offset=0))
  assert total == 3
  assert [job.id for job in page] == ["job-2", "job-1"]

  page, total = await jobs_repo.list("tenant-1", JobFilter(status=JobStatus.COMPLETED))
  assert (page, total) == ([], 0)
