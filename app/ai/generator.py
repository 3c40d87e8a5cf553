"""AI provider port for course generation and its structured-output adapter."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.ai.components import normalize_regenerated_payload, to_component_drafts
from app.ai.pipeline.contracts import (
  LessonContentOutput,
  LessonContentRequest,
  LessonContentResult,
  OutlineRequest,
  OutlineResult,
  PlannedSectionRequest,
  RegenerateComponentRequest,
  RegeneratedComponent,
  SectionExpansion,
  SectionExpansionResult,
  SectionPlan,
  SectionPlanResult,
)
from app.ai.prompts import LESSON_CHUNKS_PER_SOURCE, OUTLINE_CHUNKS_PER_SOURCE, build_lesson_content_prompt, build_regenerate_component_prompt, build_section_lessons_prompt, build_section_plan_prompt
from app.ai.providers.base import AIModel, StructuredModelResponse
from app.ai.schemas import LESSON_CONTENT_SCHEMA, SECTION_LESSONS_SCHEMA, SECTION_PLAN_SCHEMA, component_schema
from app.core.errors import JobEngineError, ProviderError
from app.storage.content_repo import OutlineLessonDraft, OutlineSectionDraft

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CourseGenerator(Protocol):
  """Provider port. Every call returns its structured result plus the tokens it consumed."""

  async def plan_sections(self, request: OutlineRequest) -> SectionPlanResult:
    """Return course sections with lesson titles only."""

  async def expand_section(self, request: OutlineRequest, section: PlannedSectionRequest) -> SectionExpansionResult:
    """Return detailed lessons for one planned section."""

  async def generate_lesson_content(self, request: LessonContentRequest) -> LessonContentResult:
    """Return ordered lesson components and a segue."""

  async def regenerate_component(self, request: RegenerateComponentRequest) -> RegeneratedComponent:
    """Return a revised payload for one component."""


class StructuredCourseGenerator:
  """CourseGenerator backed by any structured-output model."""

  def __init__(self, model: AIModel, *, outline_chunks_per_source: int = OUTLINE_CHUNKS_PER_SOURCE, lesson_chunks_per_source: int = LESSON_CHUNKS_PER_SOURCE) -> None:
    self._model = model
    self._outline_chunks = outline_chunks_per_source
    self._lesson_chunks = lesson_chunks_per_source

  async def _call(self, purpose: str, prompt: str, schema: dict[str, Any], output_model: type[ModelT]) -> tuple[ModelT, int]:
    try:
      response: StructuredModelResponse = await self._model.generate_structured(prompt, schema)
    except Exception as exc:  # noqa: BLE001
      raise ProviderError(f"{purpose} call failed: {exc}") from exc

    try:
      parsed = output_model.model_validate(response.content)
    except PydanticValidationError as exc:
      raise ProviderError(f"{purpose} returned output that does not match the expected structure: {exc}") from exc

    logger.info("Provider call purpose=%s model=%s tokens=%s", purpose, self._model.name, response.total_tokens)
    return parsed, response.total_tokens

  async def plan_sections(self, request: OutlineRequest) -> SectionPlanResult:
    prompt = build_section_plan_prompt(request, max_chunks=self._outline_chunks)
    plan, tokens = await self._call("plan_sections", prompt, SECTION_PLAN_SCHEMA, SectionPlan)
    sections = tuple(PlannedSectionRequest(title=item.title, description=item.description, lesson_titles=tuple(item.lesson_titles)) for item in plan.sections)
    return SectionPlanResult(sections=sections, tokens_used=tokens)

  async def expand_section(self, request: OutlineRequest, section: PlannedSectionRequest) -> SectionExpansionResult:
    prompt = build_section_lessons_prompt(request, section)
    expansion, tokens = await self._call("expand_section", prompt, SECTION_LESSONS_SCHEMA, SectionExpansion)
    return SectionExpansionResult(lessons=tuple(expansion.lessons), tokens_used=tokens)

  async def generate_lesson_content(self, request: LessonContentRequest) -> LessonContentResult:
    prompt = build_lesson_content_prompt(request, max_chunks=self._lesson_chunks)
    output, tokens = await self._call("generate_lesson_content", prompt, LESSON_CONTENT_SCHEMA, LessonContentOutput)
    return LessonContentResult(components=to_component_drafts(output.components), segue_text=output.segue_text, tokens_used=tokens)

  async def regenerate_component(self, request: RegenerateComponentRequest) -> RegeneratedComponent:
    prompt = build_regenerate_component_prompt(request)
    try:
      response = await self._model.generate_structured(prompt, component_schema(request.component_type))
    except Exception as exc:  # noqa: BLE001
      raise ProviderError(f"regenerate_component call failed: {exc}") from exc
    payload = normalize_regenerated_payload(request.component_type, response.content)
    return RegeneratedComponent(payload=payload, tokens_used=response.total_tokens)


SectionCallback = Callable[[int, int], Awaitable[None]]


async def generate_outline(generator: CourseGenerator, request: OutlineRequest, *, on_section_done: SectionCallback | None = None) -> OutlineResult:
  """Run the two-call outline protocol.

  The section plan must succeed. Each section is then expanded independently: a
  failed expansion skips that section only and is not retried. Fails with
  ProviderError when no section could be expanded.
  """
  plan = await generator.plan_sections(request)
  tokens = plan.tokens_used
  expanded: list[tuple[PlannedSectionRequest, SectionExpansionResult]] = []
  skipped: list[str] = []

  for index, section in enumerate(plan.sections):
    try:
      expansion = await generator.expand_section(request, section)
    except JobEngineError as exc:
      logger.warning("Skipping section expansion title=%r: %s", section.title, exc.message)
      skipped.append(section.title)
    else:
      tokens += expansion.tokens_used
      expanded.append((section, expansion))
    if on_section_done is not None:
      await on_section_done(index + 1, len(plan.sections))

  if not expanded:
    raise ProviderError(f"No outline section could be expanded ({len(skipped)} failed).")

  return OutlineResult(sections=_with_position_flags(expanded), skipped_sections=tuple(skipped), tokens_used=tokens)


def _with_position_flags(expanded: list[tuple[PlannedSectionRequest, SectionExpansionResult]]) -> tuple[OutlineSectionDraft, ...]:
  """Build section drafts with last-in-section and last-in-course computed over the kept sections."""
  drafts: list[OutlineSectionDraft] = []
  last_section_index = len(expanded) - 1
  for section_index, (section, expansion) in enumerate(expanded):
    last_lesson_index = len(expansion.lessons) - 1
    lessons = tuple(
      OutlineLessonDraft(
        title=lesson.title,
        description=lesson.description,
        estimated_duration_minutes=lesson.estimated_duration_minutes,
        learning_objectives=tuple(lesson.learning_objectives),
        is_last_in_section=lesson_index == last_lesson_index,
        is_last_in_course=section_index == last_section_index and lesson_index == last_lesson_index,
      )
      for lesson_index, lesson in enumerate(expansion.lessons)
    )
    drafts.append(OutlineSectionDraft(title=section.title, description=section.description, lessons=lessons))
  return tuple(drafts)
