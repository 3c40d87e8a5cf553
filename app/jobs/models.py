"""Domain models for course generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from app.core.errors import ValidationError


class JobStatus(str, Enum):
  QUEUED = "queued"
  PROCESSING = "processing"
  COMPLETED = "completed"
  FAILED = "failed"
  CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.PROCESSING})

WORKER_LOST_CODE = "WORKER_LOST"


class JobType(str, Enum):
  OUTLINE = "outline"
  LESSON_CONTENT = "lesson_content"


class SubState(str, Enum):
  """Orchestrator step a processing job is currently in."""

  GATHERING_KNOWLEDGE = "gathering_knowledge"
  ANALYZING_AUDIENCE = "analyzing_audience"
  LOADING_CONTEXT = "loading_context"
  GENERATING = "generating"
  STORING = "storing"


@dataclass(frozen=True)
class GenerationJob:
  """One attempt to produce one artifact (an outline or one lesson's content)."""

  id: str
  tenant_id: str
  job_type: JobType
  created_by_user_id: str
  status: JobStatus = JobStatus.QUEUED
  course_id: str | None = None
  outline_lesson_id: str | None = None
  generation_input_id: str | None = None
  sub_state: SubState | None = None
  progress_percent: int = 0
  progress_message: str | None = None
  tokens_used: int = 0
  error_message: str | None = None
  error_code: str | None = None
  result_json: dict[str, Any] | None = None
  max_retries: int = 3
  retry_count: int = 0
  worker_id: str | None = None
  created_at: datetime | None = None
  started_at: datetime | None = None
  claimed_at: datetime | None = None
  heartbeat_at: datetime | None = None
  completed_at: datetime | None = None
  updated_at: datetime | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  @property
  def is_cancellable(self) -> bool:
    # Once output is being stored the job runs to completion; stored content always has a completed job behind it.
    return self.status in CANCELLABLE_STATUSES and self.sub_state != SubState.STORING


@dataclass(frozen=True)
class JobFilter:
  """Filters accepted by job listing."""

  status: JobStatus | None = None
  job_type: JobType | None = None
  course_id: str | None = None
  created_by_user_id: str | None = None
  limit: int = 50
  offset: int = 0


@dataclass(frozen=True)
class JobUpdate:
  """Mutable job state written by the claim holder at a checkpoint or terminal transition."""

  status: JobStatus
  sub_state: SubState | None
  progress_percent: int
  progress_message: str | None
  tokens_used: int = 0
  error_message: str | None = None
  error_code: str | None = None
  result_json: dict[str, Any] | None = None


def require_job_fields(job: GenerationJob) -> None:
  """Reject jobs missing the fields every store requires."""

  if not job.tenant_id:
    raise ValidationError("Job requires a tenant id.")
  if not isinstance(job.job_type, JobType):
    raise ValidationError("Job requires a job type.")
  if not job.created_by_user_id:
    raise ValidationError("Job requires the id of the user who created it.")
  if job.job_type == JobType.LESSON_CONTENT and not job.outline_lesson_id:
    raise ValidationError("Lesson content jobs require an outline lesson id.")
  if job.max_retries < 0:
    raise ValidationError("max_retries must be zero or positive.")
