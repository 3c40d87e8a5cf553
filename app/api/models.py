from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.jobs.models import GenerationJob, JobStatus, JobType, SubState
from app.jobs.retry import RetryPolicy
from app.storage.content_repo import ApprovalStatus, ComponentType, CourseOutlineRecord, GeneratedLessonRecord, LessonComponentRecord, LessonTree, OutlineTree

MAX_CONTEXT_CHARS = 4000
MAX_INSTRUCTION_CHARS = 2000


class SubmitOutlineJobRequest(BaseModel):
  """Request payload for outline generation."""

  course_id: StrictStr = Field(min_length=1, description="Course the outline belongs to.")
  course_title: StrictStr = Field(min_length=1, max_length=300, examples=["Secure Coding Fundamentals"])
  knowledge_source_ids: list[StrictStr] = Field(min_length=1, max_length=50, description="Knowledge sources to ground the course in.")
  target_audience_ids: list[StrictStr] = Field(min_length=1, max_length=20, description="Audiences the course is written for; the first resolvable one is used.")
  desired_outcome: StrictStr = Field(default="", max_length=MAX_CONTEXT_CHARS)
  additional_context: StrictStr = Field(default="", max_length=MAX_CONTEXT_CHARS)
  model_config = ConfigDict(extra="forbid")


class SubmitLessonJobRequest(BaseModel):
  outline_lesson_id: StrictStr = Field(min_length=1)
  model_config = ConfigDict(extra="forbid")


class RejectOutlineRequest(BaseModel):
  reason: StrictStr = Field(min_length=1, max_length=MAX_CONTEXT_CHARS)
  model_config = ConfigDict(extra="forbid")


class RegenerateComponentRequest(BaseModel):
  instruction: StrictStr = Field(min_length=1, max_length=MAX_INSTRUCTION_CHARS, examples=["Make the explanation shorter and add an example."])
  model_config = ConfigDict(extra="forbid")


class JobResponse(BaseModel):
  """Status, progress and outcome of one generation job."""

  job_id: str
  job_type: JobType
  status: JobStatus
  sub_state: SubState | None = None
  progress_percent: int
  progress_message: str | None = None
  tokens_used: int = 0
  error_code: str | None = None
  error_message: str | None = None
  result: dict[str, Any] | None = None
  course_id: str | None = None
  outline_lesson_id: str | None = None
  retry_count: int
  max_retries: int
  can_retry: bool = False
  can_cancel: bool = False
  created_at: datetime | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  updated_at: datetime | None = None

  @classmethod
  def from_job(cls, job: GenerationJob, retry_policy: RetryPolicy | None = None) -> JobResponse:
    policy = retry_policy or RetryPolicy()
    return cls(
      job_id=job.id,
      job_type=job.job_type,
      status=job.status,
      sub_state=job.sub_state,
      progress_percent=job.progress_percent,
      progress_message=job.progress_message,
      tokens_used=job.tokens_used,
      error_code=job.error_code,
      error_message=job.error_message,
      result=job.result_json,
      course_id=job.course_id,
      outline_lesson_id=job.outline_lesson_id,
      retry_count=job.retry_count,
      max_retries=job.max_retries,
      can_retry=policy.can_retry(job),
      can_cancel=job.is_cancellable,
      created_at=job.created_at,
      started_at=job.started_at,
      completed_at=job.completed_at,
      updated_at=job.updated_at,
    )


class JobListResponse(BaseModel):
  items: list[JobResponse]
  total: int
  limit: int
  offset: int


class OutlineLessonResponse(BaseModel):
  id: str
  title: str
  description: str
  position: int
  estimated_duration_minutes: int
  learning_objectives: list[str]
  is_last_in_section: bool
  is_last_in_course: bool


class OutlineSectionResponse(BaseModel):
  id: str
  title: str
  description: str
  position: int
  lessons: list[OutlineLessonResponse]


class OutlineSummaryResponse(BaseModel):
  id: str
  course_id: str
  version: int
  approval_status: ApprovalStatus
  job_id: str | None = None
  approved_by_user_id: str | None = None
  approved_at: datetime | None = None
  rejection_reason: str | None = None
  created_at: datetime | None = None

  @classmethod
  def from_record(cls, record: CourseOutlineRecord) -> OutlineSummaryResponse:
    return cls(
      id=record.id,
      course_id=record.course_id,
      version=record.version,
      approval_status=record.approval_status,
      job_id=record.job_id,
      approved_by_user_id=record.approved_by_user_id,
      approved_at=record.approved_at,
      rejection_reason=record.rejection_reason,
      created_at=record.created_at,
    )


class OutlineResponse(OutlineSummaryResponse):
  sections: list[OutlineSectionResponse]

  @classmethod
  def from_tree(cls, tree: OutlineTree) -> OutlineResponse:
    summary = OutlineSummaryResponse.from_record(tree.outline)
    sections = [
      OutlineSectionResponse(
        id=item.section.id,
        title=item.section.title,
        description=item.section.description,
        position=item.section.position,
        lessons=[
          OutlineLessonResponse(
            id=lesson.id,
            title=lesson.title,
            description=lesson.description,
            position=lesson.position,
            estimated_duration_minutes=lesson.estimated_duration_minutes,
            learning_objectives=list(lesson.learning_objectives),
            is_last_in_section=lesson.is_last_in_section,
            is_last_in_course=lesson.is_last_in_course,
          )
          for lesson in item.lessons
        ],
      )
      for item in tree.sections
    ]
    return cls(**summary.model_dump(), sections=sections)


class ComponentResponse(BaseModel):
  id: str
  component_type: ComponentType
  position: int
  payload: dict[str, Any]
  updated_at: datetime | None = None

  @classmethod
  def from_record(cls, record: LessonComponentRecord) -> ComponentResponse:
    return cls(id=record.id, component_type=record.component_type, position=record.position, payload=record.payload, updated_at=record.updated_at)


class LessonSummaryResponse(BaseModel):
  id: str
  course_id: str
  outline_lesson_id: str
  job_id: str | None = None
  segue_text: str | None = None
  created_at: datetime | None = None

  @classmethod
  def from_record(cls, record: GeneratedLessonRecord) -> LessonSummaryResponse:
    return cls(id=record.id, course_id=record.course_id, outline_lesson_id=record.outline_lesson_id, job_id=record.job_id, segue_text=record.segue_text, created_at=record.created_at)


class LessonResponse(LessonSummaryResponse):
  components: list[ComponentResponse]

  @classmethod
  def from_tree(cls, tree: LessonTree) -> LessonResponse:
    summary = LessonSummaryResponse.from_record(tree.lesson)
    return cls(**summary.model_dump(), components=[ComponentResponse.from_record(component) for component in tree.components])


class LessonListResponse(BaseModel):
  items: list[LessonSummaryResponse]
