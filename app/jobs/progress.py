"""Checkpoint progress tracking for a claimed job."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NoReturn

from app.core.errors import JobCancelledError, JobOwnershipLostError
from app.jobs.models import GenerationJob, JobStatus, JobType, JobUpdate, SubState
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
  """Fixed progress value written when a job enters a sub-state."""

  sub_state: SubState
  percent: int
  message: str


OUTLINE_GATHERING = Checkpoint(SubState.GATHERING_KNOWLEDGE, 0, "Gathering SME knowledge...")
OUTLINE_AUDIENCE = Checkpoint(SubState.ANALYZING_AUDIENCE, 20, "Analyzing target audience...")
OUTLINE_GENERATING = Checkpoint(SubState.GENERATING, 40, "Generating course outline with AI...")
OUTLINE_STORING = Checkpoint(SubState.STORING, 70, "Storing outline...")
OUTLINE_COMPLETED_MESSAGE = "Outline generation complete"

LESSON_LOADING = Checkpoint(SubState.LOADING_CONTEXT, 0, "Loading lesson context...")
LESSON_GENERATING = Checkpoint(SubState.GENERATING, 30, "Generating lesson content with AI...")
LESSON_STORING = Checkpoint(SubState.STORING, 70, "Storing lesson content...")
LESSON_COMPLETED_MESSAGE = "Lesson content generation complete"

CHECKPOINTS: dict[JobType, tuple[Checkpoint, ...]] = {
  JobType.OUTLINE: (OUTLINE_GATHERING, OUTLINE_AUDIENCE, OUTLINE_GENERATING, OUTLINE_STORING),
  JobType.LESSON_CONTENT: (LESSON_LOADING, LESSON_GENERATING, LESSON_STORING),
}

COMPLETED_PERCENT = 100


class JobProgressTracker:
  """Write checkpoints for one claimed job through the claim-guarded store update.

  A rejected write means the job was cancelled or another worker took it over;
  the tracker re-reads the row and raises the matching error so the step chain
  stops at the checkpoint.
  """

  def __init__(self, *, job: GenerationJob, jobs_repo: JobsRepository, worker_id: str) -> None:
    self._jobs_repo = jobs_repo
    self._worker_id = worker_id
    self._job = job
    self._tokens_used = job.tokens_used

  @property
  def job(self) -> GenerationJob:
    return self._job

  @property
  def tokens_used(self) -> int:
    return self._tokens_used

  def add_tokens(self, tokens: int) -> None:
    self._tokens_used += max(tokens, 0)

  async def checkpoint(self, checkpoint: Checkpoint, *, message: str | None = None) -> GenerationJob:
    """Enter a sub-state and persist its checkpoint."""
    update = JobUpdate(status=JobStatus.PROCESSING, sub_state=checkpoint.sub_state, progress_percent=checkpoint.percent, progress_message=message or checkpoint.message, tokens_used=self._tokens_used)
    return await self._write(update)

  async def heartbeat(self, message: str | None = None) -> GenerationJob:
    """Persist the current state again, refreshing the heartbeat without moving the checkpoint."""
    update = JobUpdate(status=JobStatus.PROCESSING, sub_state=self._job.sub_state, progress_percent=self._job.progress_percent, progress_message=message or self._job.progress_message, tokens_used=self._tokens_used)
    return await self._write(update)

  async def complete(self, *, message: str, result_json: dict[str, Any]) -> GenerationJob:
    update = JobUpdate(status=JobStatus.COMPLETED, sub_state=None, progress_percent=COMPLETED_PERCENT, progress_message=message, tokens_used=self._tokens_used, result_json=result_json)
    return await self._write(update)

  async def fail(self, *, code: str, message: str) -> GenerationJob | None:
    """Mark the job failed; returns None when the claim was already lost."""
    update = JobUpdate(status=JobStatus.FAILED, sub_state=self._job.sub_state, progress_percent=self._job.progress_percent, progress_message="Generation failed", tokens_used=self._tokens_used, error_message=message, error_code=code)
    record = await self._jobs_repo.update(self._job.tenant_id, self._job.id, worker_id=self._worker_id, update=update)
    if record is not None:
      self._job = record
    return record

  async def _write(self, update: JobUpdate) -> GenerationJob:
    record = await self._jobs_repo.update(self._job.tenant_id, self._job.id, worker_id=self._worker_id, update=update)
    if record is None:
      await self._raise_rejected()
    self._job = record
    logger.debug("Job checkpoint job_id=%s sub_state=%s progress=%s", record.id, record.sub_state, record.progress_percent)
    return record

  async def _raise_rejected(self) -> NoReturn:
    current = await self._jobs_repo.get(self._job.tenant_id, self._job.id)
    if current is not None and current.status == JobStatus.CANCELLED:
      raise JobCancelledError(f"Job {self._job.id} was cancelled.")
    raise JobOwnershipLostError(f"Worker {self._worker_id} no longer holds the claim on job {self._job.id}.")
