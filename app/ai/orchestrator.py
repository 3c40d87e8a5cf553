"""Step orchestration for outline and lesson content jobs.

Each step takes an immutable context, persists its checkpoint, performs one unit
of work and returns a new context. Content writes happen in a single store call
per step, so a failure between steps never leaves a partial tree behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from app.ai.generator import CourseGenerator, generate_outline
from app.ai.pipeline.contracts import LessonContentRequest, LessonContentResult, OutlineRequest, OutlineResult
from app.core.errors import NotFoundError, ValidationError
from app.integrations.contracts import AudienceLookup, KnowledgeDigest, KnowledgeSourceLookup, TargetAudience
from app.jobs.models import GenerationJob
from app.jobs.progress import (
  LESSON_COMPLETED_MESSAGE,
  LESSON_GENERATING,
  LESSON_LOADING,
  LESSON_STORING,
  OUTLINE_AUDIENCE,
  OUTLINE_COMPLETED_MESSAGE,
  OUTLINE_GATHERING,
  OUTLINE_GENERATING,
  OUTLINE_STORING,
  JobProgressTracker,
)
from app.storage.content_repo import ApprovalStatus, ContentRepository, CourseGenerationInputRecord, LessonTree, OutlineLessonRecord, OutlineTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutlineStepContext:
  job: GenerationJob
  generation_input: CourseGenerationInputRecord
  knowledge: tuple[KnowledgeDigest, ...] = ()
  audience: TargetAudience | None = None
  outline: OutlineResult | None = None
  saved: OutlineTree | None = None


@dataclass(frozen=True)
class LessonStepContext:
  job: GenerationJob
  request: LessonContentRequest | None = None
  course_id: str | None = None
  result: LessonContentResult | None = None
  saved: LessonTree | None = None


def _require(value: Any, name: str) -> Any:
  if value is None:
    raise RuntimeError(f"Step context is missing {name}.")
  return value


class CourseGenerationOrchestrator:
  """Drive outline and lesson jobs through their sub-states."""

  def __init__(self, *, content_repo: ContentRepository, knowledge_lookup: KnowledgeSourceLookup, audience_lookup: AudienceLookup, generator: CourseGenerator) -> None:
    self._content = content_repo
    self._knowledge = knowledge_lookup
    self._audiences = audience_lookup
    self._generator = generator

  async def _resolve_audience(self, tenant_id: str, audience_ids: tuple[str, ...]) -> TargetAudience:
    audiences = await self._audiences.get_many(tenant_id, list(audience_ids))
    if not audiences:
      raise ValidationError("None of the requested target audiences could be resolved.")
    # Prompts are written for a single audience; the first resolvable one wins.
    return audiences[0]

  # Outline job

  async def run_outline(self, tracker: JobProgressTracker) -> GenerationJob:
    job = tracker.job
    if not job.generation_input_id:
      raise ValidationError("Outline job has no generation input.")
    generation_input = await self._content.get_generation_input(job.tenant_id, job.generation_input_id)
    if generation_input is None:
      raise NotFoundError(f"Generation input {job.generation_input_id} not found.")

    ctx = OutlineStepContext(job=job, generation_input=generation_input)
    ctx = await self._gather_knowledge(ctx, tracker)
    ctx = await self._analyze_audience(ctx, tracker)
    ctx = await self._generate_outline(ctx, tracker)
    ctx = await self._store_outline(ctx, tracker)
    return await self._complete_outline(ctx, tracker)

  async def _gather_knowledge(self, ctx: OutlineStepContext, tracker: JobProgressTracker) -> OutlineStepContext:
    job = await tracker.checkpoint(OUTLINE_GATHERING)
    knowledge = await self._knowledge.get_many(job.tenant_id, list(ctx.generation_input.knowledge_source_ids))
    if not knowledge:
      raise ValidationError("None of the requested knowledge sources could be resolved.")
    return replace(ctx, job=job, knowledge=tuple(knowledge))

  async def _analyze_audience(self, ctx: OutlineStepContext, tracker: JobProgressTracker) -> OutlineStepContext:
    job = await tracker.checkpoint(OUTLINE_AUDIENCE)
    audience = await self._resolve_audience(job.tenant_id, ctx.generation_input.target_audience_ids)
    return replace(ctx, job=job, audience=audience)

  async def _generate_outline(self, ctx: OutlineStepContext, tracker: JobProgressTracker) -> OutlineStepContext:
    job = await tracker.checkpoint(OUTLINE_GENERATING)
    request = OutlineRequest(
      course_title=ctx.generation_input.course_title,
      desired_outcome=ctx.generation_input.desired_outcome,
      knowledge=ctx.knowledge,
      audience=_require(ctx.audience, "audience"),
      additional_context=ctx.generation_input.additional_context,
    )

    async def _on_section_done(done: int, total: int) -> None:
      await tracker.heartbeat(f"Generating course outline with AI... ({done}/{total} sections)")

    outline = await generate_outline(self._generator, request, on_section_done=_on_section_done)
    tracker.add_tokens(outline.tokens_used)
    return replace(ctx, job=job, outline=outline)

  async def _store_outline(self, ctx: OutlineStepContext, tracker: JobProgressTracker) -> OutlineStepContext:
    job = await tracker.checkpoint(OUTLINE_STORING)
    outline: OutlineResult = _require(ctx.outline, "outline")
    saved = await self._content.save_outline(job.tenant_id, course_id=ctx.generation_input.course_id, generation_input_id=ctx.generation_input.id, job_id=job.id, sections=list(outline.sections))
    return replace(ctx, job=job, saved=saved)

  async def _complete_outline(self, ctx: OutlineStepContext, tracker: JobProgressTracker) -> GenerationJob:
    saved: OutlineTree = _require(ctx.saved, "saved outline")
    outline: OutlineResult = _require(ctx.outline, "outline")
    message = OUTLINE_COMPLETED_MESSAGE
    if outline.skipped_sections:
      message = f"{message} (skipped sections: {', '.join(outline.skipped_sections)})"
    result = {
      "outline_id": saved.outline.id,
      "version": saved.outline.version,
      "section_ids": [tree.section.id for tree in saved.sections],
      "lesson_count": len(saved.lessons()),
      "skipped_sections": list(outline.skipped_sections),
    }
    return await tracker.complete(message=message, result_json=result)

  # Lesson content job

  async def run_lesson(self, tracker: JobProgressTracker) -> GenerationJob:
    ctx = LessonStepContext(job=tracker.job)
    ctx = await self._load_lesson_context(ctx, tracker)
    ctx = await self._generate_lesson(ctx, tracker)
    ctx = await self._store_lesson(ctx, tracker)
    return await self._complete_lesson(ctx, tracker)

  async def _load_lesson_context(self, ctx: LessonStepContext, tracker: JobProgressTracker) -> LessonStepContext:
    job = await tracker.checkpoint(LESSON_LOADING)
    outline_lesson_id = _require(job.outline_lesson_id, "outline lesson id")
    lesson = await self._content.get_outline_lesson(job.tenant_id, outline_lesson_id)
    if lesson is None:
      raise NotFoundError(f"Outline lesson {outline_lesson_id} not found.")
    tree = await self._content.get_outline(job.tenant_id, lesson.outline_id)
    if tree is None:
      raise NotFoundError(f"Outline {lesson.outline_id} not found.")
    # Approval may have been revoked after submission.
    if tree.outline.approval_status != ApprovalStatus.APPROVED:
      raise ValidationError(f"Outline {tree.outline.id} is {tree.outline.approval_status.value}; lesson content requires an approved outline.")
    if not tree.outline.generation_input_id:
      raise ValidationError(f"Outline {tree.outline.id} has no generation input.")
    generation_input = await self._content.get_generation_input(job.tenant_id, tree.outline.generation_input_id)
    if generation_input is None:
      raise NotFoundError(f"Generation input {tree.outline.generation_input_id} not found.")

    knowledge = await self._knowledge.get_many(job.tenant_id, list(generation_input.knowledge_source_ids))
    audience = await self._resolve_audience(job.tenant_id, generation_input.target_audience_ids)
    request = _build_lesson_request(tree, lesson.id, course_title=generation_input.course_title, knowledge=tuple(knowledge), audience=audience)
    return replace(ctx, job=job, request=request, course_id=tree.outline.course_id)

  async def _generate_lesson(self, ctx: LessonStepContext, tracker: JobProgressTracker) -> LessonStepContext:
    job = await tracker.checkpoint(LESSON_GENERATING)
    result = await self._generator.generate_lesson_content(_require(ctx.request, "lesson request"))
    tracker.add_tokens(result.tokens_used)
    return replace(ctx, job=job, result=result)

  async def _store_lesson(self, ctx: LessonStepContext, tracker: JobProgressTracker) -> LessonStepContext:
    job = await tracker.checkpoint(LESSON_STORING)
    result: LessonContentResult = _require(ctx.result, "lesson content")
    saved = await self._content.save_generated_lesson(
      job.tenant_id,
      course_id=_require(ctx.course_id, "course id"),
      outline_lesson_id=_require(job.outline_lesson_id, "outline lesson id"),
      job_id=job.id,
      segue_text=result.segue_text or None,
      components=list(result.components),
    )
    return replace(ctx, job=job, saved=saved)

  async def _complete_lesson(self, ctx: LessonStepContext, tracker: JobProgressTracker) -> GenerationJob:
    saved: LessonTree = _require(ctx.saved, "saved lesson")
    result = {"generated_lesson_id": saved.lesson.id, "component_ids": [component.id for component in saved.components]}
    return await tracker.complete(message=LESSON_COMPLETED_MESSAGE, result_json=result)


def _build_lesson_request(tree: OutlineTree, outline_lesson_id: str, *, course_title: str, knowledge: tuple[KnowledgeDigest, ...], audience: TargetAudience) -> LessonContentRequest:
  """Resolve the lesson's neighbours in course order and assemble the provider request."""
  found = tree.find_lesson(outline_lesson_id)
  if found is None:
    raise NotFoundError(f"Outline lesson {outline_lesson_id} is not part of outline {tree.outline.id}.")
  section, lesson = found
  lessons = tree.lessons()
  index = [item.id for item in lessons].index(outline_lesson_id)
  previous_lesson: OutlineLessonRecord | None = lessons[index - 1] if index > 0 else None
  next_lesson: OutlineLessonRecord | None = lessons[index + 1] if index + 1 < len(lessons) else None
  return LessonContentRequest(
    course_title=course_title,
    section_title=section.title,
    lesson_title=lesson.title,
    lesson_description=lesson.description,
    learning_objectives=lesson.learning_objectives,
    knowledge=knowledge,
    audience=audience,
    is_last_in_section=lesson.is_last_in_section,
    is_last_in_course=lesson.is_last_in_course,
    previous_lesson_title=previous_lesson.title if previous_lesson else None,
    next_lesson_title=next_lesson.title if next_lesson else None,
  )
