"""Shared data contracts for the generation pipeline.

Requests are frozen dataclasses built by the orchestrator. Provider responses are
pydantic models so malformed model output fails validation instead of leaking
into the content store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.integrations.contracts import KnowledgeDigest, TargetAudience
from app.storage.content_repo import ComponentDraft, ComponentType, OutlineSectionDraft


@dataclass(frozen=True)
class OutlineRequest:
  """Fully-resolved inputs for generating a course outline."""

  course_title: str
  desired_outcome: str
  knowledge: tuple[KnowledgeDigest, ...]
  audience: TargetAudience
  additional_context: str = ""


@dataclass(frozen=True)
class PlannedSectionRequest:
  """One planned section to expand into detailed lessons."""

  title: str
  description: str
  lesson_titles: tuple[str, ...]


@dataclass(frozen=True)
class LessonContentRequest:
  """Fully-resolved inputs for generating one lesson's content."""

  course_title: str
  section_title: str
  lesson_title: str
  lesson_description: str
  learning_objectives: tuple[str, ...]
  knowledge: tuple[KnowledgeDigest, ...]
  audience: TargetAudience
  is_last_in_section: bool
  is_last_in_course: bool
  previous_lesson_title: str | None = None
  next_lesson_title: str | None = None


@dataclass(frozen=True)
class RegenerateComponentRequest:
  component_type: ComponentType
  current_payload: dict[str, Any]
  instruction: str
  audience: TargetAudience
  lesson_context: str = ""


class _ModelOutput(BaseModel):
  model_config = ConfigDict(extra="ignore")


class PlannedSection(_ModelOutput):
  title: str = Field(min_length=1)
  description: str = ""
  lesson_titles: list[str] = Field(min_length=1)


class SectionPlan(_ModelOutput):
  """First outline call: sections with lesson titles only."""

  sections: list[PlannedSection] = Field(min_length=1)


class ExpandedLesson(_ModelOutput):
  title: str = Field(min_length=1)
  description: str = ""
  estimated_duration_minutes: int = Field(default=10, ge=0)
  learning_objectives: list[str] = Field(default_factory=list)


class SectionExpansion(_ModelOutput):
  """Second outline call, once per section: detailed lessons."""

  lessons: list[ExpandedLesson] = Field(min_length=1)


class QuizOption(_ModelOutput):
  id: str
  text: str


class FlatComponent(_ModelOutput):
  """A lesson component in the flat shape requested from the model."""

  component_type: ComponentType
  text_html: str = ""
  heading_level: int = Field(default=2, ge=1, le=4)
  heading_text: str = ""
  image_description: str = ""
  image_alt_text: str = ""
  image_caption: str = ""
  quiz_question: str = ""
  quiz_options: list[QuizOption] = Field(default_factory=list)
  quiz_correct_answer_id: str = ""
  quiz_explanation: str = ""


class LessonContentOutput(_ModelOutput):
  components: list[FlatComponent] = Field(min_length=1)
  segue_text: str = ""


@dataclass(frozen=True)
class SectionPlanResult:
  sections: tuple[PlannedSectionRequest, ...]
  tokens_used: int = 0


@dataclass(frozen=True)
class SectionExpansionResult:
  lessons: tuple[ExpandedLesson, ...]
  tokens_used: int = 0


@dataclass(frozen=True)
class OutlineResult:
  """Composed outline: expanded sections plus the titles of sections that were skipped."""

  sections: tuple[OutlineSectionDraft, ...]
  skipped_sections: tuple[str, ...] = field(default_factory=tuple)
  tokens_used: int = 0


@dataclass(frozen=True)
class LessonContentResult:
  components: tuple[ComponentDraft, ...]
  segue_text: str
  tokens_used: int = 0


@dataclass(frozen=True)
class RegeneratedComponent:
  payload: dict[str, Any]
  tokens_used: int = 0
