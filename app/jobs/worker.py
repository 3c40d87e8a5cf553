"""Claim-based background processing for queued generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from app.core.errors import JobCancelledError, JobEngineError, JobOwnershipLostError
from app.integrations.contracts import CacheInvalidator, CollaboratorError
from app.jobs.dispatch import JobHandlerRegistry
from app.jobs.models import GenerationJob, JobStatus
from app.jobs.progress import JobProgressTracker
from app.jobs.retry import RetryPolicy
from app.notifications.contracts import JobNotification, NotificationError, NotificationSink
from app.storage.jobs_repo import JobsRepository

INTERNAL_ERROR_CODE = "INTERNAL"
COLLABORATOR_ERROR_CODE = "COLLABORATOR_ERROR"

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
  return datetime.now(UTC)


class JobProcessor:
  """Run one claimed job to a terminal state and fire the terminal side effects."""

  def __init__(self, *, jobs_repo: JobsRepository, registry: JobHandlerRegistry, notifications: NotificationSink, cache_invalidator: CacheInvalidator, worker_id: str) -> None:
    self._jobs_repo = jobs_repo
    self._registry = registry
    self._notifications = notifications
    self._cache_invalidator = cache_invalidator
    self._worker_id = worker_id

  async def process_job(self, job: GenerationJob) -> GenerationJob | None:
    """Process a claimed job; every failure is recorded on the job instead of propagating."""
    tracker = JobProgressTracker(job=job, jobs_repo=self._jobs_repo, worker_id=self._worker_id)
    logger.info("Processing job job_id=%s tenant_id=%s type=%s worker_id=%s retry_count=%s", job.id, job.tenant_id, job.job_type.value, self._worker_id, job.retry_count)
    try:
      handler = self._registry.resolve(job.job_type)
      final = await handler.process(tracker)
    except JobCancelledError:
      logger.info("Job cancelled at checkpoint job_id=%s tenant_id=%s", job.id, job.tenant_id)
      return await self._jobs_repo.get(job.tenant_id, job.id)
    except JobOwnershipLostError as exc:
      logger.warning("Job claim lost job_id=%s tenant_id=%s: %s", job.id, job.tenant_id, exc.message)
      return None
    except JobEngineError as exc:
      logger.warning("Job failed job_id=%s tenant_id=%s code=%s: %s", job.id, job.tenant_id, exc.code, exc.message)
      final = await tracker.fail(code=exc.code, message=exc.message)
    except CollaboratorError as exc:
      logger.warning("Job failed on collaborator lookup job_id=%s tenant_id=%s: %s", job.id, job.tenant_id, exc)
      final = await tracker.fail(code=COLLABORATOR_ERROR_CODE, message=str(exc))
    except Exception as exc:  # noqa: BLE001
      logger.error("Job crashed job_id=%s tenant_id=%s", job.id, job.tenant_id, exc_info=True)
      final = await tracker.fail(code=INTERNAL_ERROR_CODE, message=f"Unexpected error: {exc}")

    if final is None:
      logger.warning("Job failure could not be recorded; claim lost job_id=%s", job.id)
      return None

    if final.status == JobStatus.COMPLETED:
      logger.info("Job completed job_id=%s tenant_id=%s tokens=%s", final.id, final.tenant_id, final.tokens_used)
      await self._invalidate_course_cache(final)
    await self.notify_terminal(final)
    return final

  async def notify_terminal(self, job: GenerationJob) -> None:
    """Send a completed/failed notification; delivery problems are logged and dropped."""
    if job.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
      return
    notification = JobNotification(
      tenant_id=job.tenant_id,
      user_id=job.created_by_user_id,
      job_id=job.id,
      job_type=job.job_type.value,
      status=job.status.value,
      progress_percent=job.progress_percent,
      course_id=job.course_id,
      error_code=job.error_code,
    )
    try:
      await self._notifications.notify_job_terminal(notification)
    except NotificationError as exc:
      logger.warning("Job notification failed job_id=%s: %s", job.id, exc)
    except Exception:  # noqa: BLE001
      logger.error("Job notification crashed job_id=%s", job.id, exc_info=True)

  async def _invalidate_course_cache(self, job: GenerationJob) -> None:
    if not job.course_id:
      return
    try:
      await self._cache_invalidator.invalidate_course(job.tenant_id, job.course_id)
    except CollaboratorError as exc:
      logger.warning("Cache invalidation failed course_id=%s job_id=%s: %s", job.course_id, job.id, exc)


class JobWorker:
  """Polling loop that claims one job at a time and processes it fully before polling again."""

  def __init__(self, *, jobs_repo: JobsRepository, processor: JobProcessor, worker_id: str, retry_policy: RetryPolicy | None = None, poll_seconds: float = 5.0, clock: Callable[[], datetime] | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._processor = processor
    self._worker_id = worker_id
    self._retry_policy = retry_policy or RetryPolicy()
    self._poll_seconds = poll_seconds
    self._clock = clock or _utcnow

  @property
  def worker_id(self) -> str:
    return self._worker_id

  async def run_once(self) -> GenerationJob | None:
    """Fail abandoned jobs at their retry cap, then claim and process the next eligible job."""
    stale_before = self._retry_policy.stale_before(self._clock())
    for lost in await self._jobs_repo.fail_stale(stale_before=stale_before):
      logger.warning("Failed abandoned job at retry limit job_id=%s tenant_id=%s previous_worker=%s", lost.id, lost.tenant_id, lost.worker_id)
      await self._processor.notify_terminal(lost)

    job = await self._jobs_repo.claim_next(worker_id=self._worker_id, stale_before=stale_before)
    if job is None:
      return None
    logger.info("Claimed job job_id=%s tenant_id=%s worker_id=%s", job.id, job.tenant_id, self._worker_id)
    return await self._processor.process_job(job)

  async def run_forever(self, stop_event: asyncio.Event) -> None:
    """Poll until stop_event is set; a failing poll never stops the loop."""
    logger.info("Job worker started worker_id=%s poll_seconds=%s", self._worker_id, self._poll_seconds)
    while not stop_event.is_set():
      claimed = False
      try:
        claimed = await self.run_once() is not None
      except Exception:  # noqa: BLE001
        logger.error("Job worker poll failed worker_id=%s", self._worker_id, exc_info=True)

      # Drain the queue without waiting while jobs keep arriving.
      if claimed:
        continue
      try:
        await asyncio.wait_for(stop_event.wait(), timeout=self._poll_seconds)
      except TimeoutError:
        pass
    logger.info("Job worker stopped worker_id=%s", self._worker_id)
