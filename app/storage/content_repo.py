"""Storage interfaces and records for generated course content."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class ApprovalStatus(str, Enum):
  PENDING_REVIEW = "pending_review"
  APPROVED = "approved"
  REJECTED = "rejected"


class ComponentType(str, Enum):
  TEXT = "text"
  HEADING = "heading"
  IMAGE = "image"
  QUIZ = "quiz"


@dataclass(frozen=True)
class CourseGenerationInputRecord:
  """Frozen parameters for one course outline run."""

  id: str
  tenant_id: str
  course_id: str
  course_title: str
  knowledge_source_ids: tuple[str, ...]
  target_audience_ids: tuple[str, ...]
  desired_outcome: str
  additional_context: str
  created_by_user_id: str
  created_at: datetime | None = None

  def same_parameters(self, other: CourseGenerationInputRecord) -> bool:
    """Return True when both rows describe the same generation request."""
    return (
      self.course_id == other.course_id
      and self.course_title == other.course_title
      and self.knowledge_source_ids == other.knowledge_source_ids
      and self.target_audience_ids == other.target_audience_ids
      and self.desired_outcome == other.desired_outcome
      and self.additional_context == other.additional_context
    )


@dataclass(frozen=True)
class CourseOutlineRecord:
  id: str
  tenant_id: str
  course_id: str
  generation_input_id: str | None
  job_id: str | None
  version: int
  approval_status: ApprovalStatus
  approved_by_user_id: str | None = None
  approved_at: datetime | None = None
  rejection_reason: str | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None


@dataclass(frozen=True)
class OutlineSectionRecord:
  id: str
  tenant_id: str
  outline_id: str
  title: str
  description: str
  position: int


@dataclass(frozen=True)
class OutlineLessonRecord:
  id: str
  tenant_id: str
  outline_id: str
  section_id: str
  title: str
  description: str
  position: int
  estimated_duration_minutes: int
  learning_objectives: tuple[str, ...]
  is_last_in_section: bool
  is_last_in_course: bool


@dataclass(frozen=True)
class OutlineSectionTree:
  section: OutlineSectionRecord
  lessons: tuple[OutlineLessonRecord, ...]


@dataclass(frozen=True)
class OutlineTree:
  """An outline with its ordered sections and lessons."""

  outline: CourseOutlineRecord
  sections: tuple[OutlineSectionTree, ...]

  def lessons(self) -> list[OutlineLessonRecord]:
    """Return every lesson in course order."""
    return [lesson for tree in self.sections for lesson in tree.lessons]

  def find_lesson(self, outline_lesson_id: str) -> tuple[OutlineSectionRecord, OutlineLessonRecord] | None:
    for tree in self.sections:
      for lesson in tree.lessons:
        if lesson.id == outline_lesson_id:
          return tree.section, lesson
    return None


@dataclass(frozen=True)
class GeneratedLessonRecord:
  id: str
  tenant_id: str
  course_id: str
  outline_lesson_id: str
  job_id: str | None
  segue_text: str | None
  created_at: datetime | None = None


@dataclass(frozen=True)
class LessonComponentRecord:
  id: str
  tenant_id: str
  generated_lesson_id: str
  component_type: ComponentType
  position: int
  payload: dict[str, Any]
  updated_at: datetime | None = None


@dataclass(frozen=True)
class LessonTree:
  lesson: GeneratedLessonRecord
  components: tuple[LessonComponentRecord, ...]


@dataclass(frozen=True)
class OutlineLessonDraft:
  title: str
  description: str
  estimated_duration_minutes: int
  learning_objectives: tuple[str, ...]
  is_last_in_section: bool = False
  is_last_in_course: bool = False


@dataclass(frozen=True)
class OutlineSectionDraft:
  title: str
  description: str
  lessons: tuple[OutlineLessonDraft, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ComponentDraft:
  component_type: ComponentType
  payload: dict[str, Any]


class ContentRepository(Protocol):
  """Repository contract for course generation artifacts.

  Trees (outline + sections + lessons, lesson + components) are written in one
  transaction each, so readers never observe a partial tree.
  """

  async def get_or_create_generation_input(self, record: CourseGenerationInputRecord) -> tuple[CourseGenerationInputRecord, bool]:
    """Reuse the course's latest input when parameters match, otherwise insert record."""

  async def get_generation_input(self, tenant_id: str, input_id: str) -> CourseGenerationInputRecord | None:
    """Fetch a generation input by identifier."""

  async def save_outline(self, tenant_id: str, *, course_id: str, generation_input_id: str | None, job_id: str | None, sections: list[OutlineSectionDraft]) -> OutlineTree:
    """Insert a new pending_review outline version with its sections and lessons."""

  async def get_outline(self, tenant_id: str, outline_id: str) -> OutlineTree | None:
    """Fetch one outline tree."""

  async def get_latest_outline(self, tenant_id: str, course_id: str) -> OutlineTree | None:
    """Fetch the highest outline version for a course."""

  async def get_outline_lesson(self, tenant_id: str, outline_lesson_id: str) -> OutlineLessonRecord | None:
    """Fetch one outline lesson."""

  async def set_outline_approval(self, tenant_id: str, outline_id: str, *, status: ApprovalStatus, actor_user_id: str, reason: str | None = None) -> CourseOutlineRecord | None:
    """Record an approval decision for an outline."""

  async def save_generated_lesson(self, tenant_id: str, *, course_id: str, outline_lesson_id: str, job_id: str | None, segue_text: str | None, components: list[ComponentDraft]) -> LessonTree:
    """Replace the generated lesson for an outline lesson with a new one and its components."""

  async def get_generated_lesson(self, tenant_id: str, lesson_id: str) -> LessonTree | None:
    """Fetch one generated lesson with its ordered components."""

  async def list_generated_lessons(self, tenant_id: str, course_id: str) -> list[GeneratedLessonRecord]:
    """List the generated lessons of a course."""

  async def get_component(self, tenant_id: str, component_id: str) -> LessonComponentRecord | None:
    """Fetch one lesson component."""

  async def update_component_payload(self, tenant_id: str, component_id: str, payload: dict[str, Any]) -> LessonComponentRecord | None:
    """Overwrite a component's payload."""
