"""Request-side operations: job submission, job control and generated content access."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from app.ai.generator import CourseGenerator
from app.ai.pipeline.contracts import RegenerateComponentRequest
from app.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.integrations.contracts import AudienceLookup, CacheInvalidator, CallerIdentity, CollaboratorError
from app.jobs.models import GenerationJob, JobFilter, JobType
from app.jobs.retry import RetryPolicy
from app.storage.content_repo import ApprovalStatus, ContentRepository, CourseGenerationInputRecord, CourseOutlineRecord, GeneratedLessonRecord, LessonComponentRecord, LessonTree, OutlineTree
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_id, generate_job_id

logger = logging.getLogger(__name__)

_MAX_LIST_LIMIT = 200


def _clean_ids(raw_ids: Sequence[str], *, name: str) -> tuple[str, ...]:
  """Strip, drop blanks and de-duplicate while keeping caller order."""
  cleaned = tuple(dict.fromkeys(item.strip() for item in raw_ids if item and item.strip()))
  if not cleaned:
    raise ValidationError(f"At least one {name} is required.")
  return cleaned


def _ensure_cancellable(job: GenerationJob) -> None:
  if job.is_terminal:
    raise InvalidTransitionError(f"Job {job.id} is already {job.status.value} and cannot be cancelled.")
  if not job.is_cancellable:
    raise InvalidTransitionError(f"Job {job.id} is storing its output and will complete; it can no longer be cancelled.")


def _require_text(value: str | None, *, name: str) -> str:
  cleaned = (value or "").strip()
  if not cleaned:
    raise ValidationError(f"{name} is required.")
  return cleaned


class GenerationService:
  """Entry points used by the HTTP layer. Failures are raised as domain errors."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    content_repo: ContentRepository,
    audience_lookup: AudienceLookup,
    generator: CourseGenerator,
    cache_invalidator: CacheInvalidator,
    retry_policy: RetryPolicy | None = None,
    default_max_retries: int = 3,
  ) -> None:
    self._jobs = jobs_repo
    self._content = content_repo
    self._audiences = audience_lookup
    self._generator = generator
    self._cache_invalidator = cache_invalidator
    self._retry_policy = retry_policy or RetryPolicy()
    self._default_max_retries = default_max_retries

  # Submission

  async def submit_outline_job(
    self,
    identity: CallerIdentity,
    *,
    course_id: str,
    course_title: str,
    knowledge_source_ids: Sequence[str],
    target_audience_ids: Sequence[str],
    desired_outcome: str,
    additional_context: str = "",
  ) -> GenerationJob:
    """Freeze the generation parameters and enqueue an outline job."""
    draft = CourseGenerationInputRecord(
      id=generate_id(),
      tenant_id=identity.tenant_id,
      course_id=_require_text(course_id, name="course_id"),
      course_title=_require_text(course_title, name="course_title"),
      knowledge_source_ids=_clean_ids(knowledge_source_ids, name="knowledge source id"),
      target_audience_ids=_clean_ids(target_audience_ids, name="target audience id"),
      desired_outcome=(desired_outcome or "").strip(),
      additional_context=(additional_context or "").strip(),
      created_by_user_id=identity.user_id,
    )
    generation_input, created = await self._content.get_or_create_generation_input(draft)
    job = GenerationJob(
      id=generate_job_id(),
      tenant_id=identity.tenant_id,
      job_type=JobType.OUTLINE,
      created_by_user_id=identity.user_id,
      course_id=generation_input.course_id,
      generation_input_id=generation_input.id,
      max_retries=self._default_max_retries,
      progress_message="Queued",
    )
    record = await self._jobs.create(job)
    logger.info("Outline job submitted job_id=%s tenant_id=%s course_id=%s input_id=%s new_input=%s", record.id, record.tenant_id, record.course_id, generation_input.id, created)
    return record

  async def submit_lesson_job(self, identity: CallerIdentity, *, outline_lesson_id: str) -> GenerationJob:
    """Enqueue lesson content generation; the lesson's outline must already be approved."""
    outline_lesson_id = _require_text(outline_lesson_id, name="outline_lesson_id")
    lesson = await self._content.get_outline_lesson(identity.tenant_id, outline_lesson_id)
    if lesson is None:
      raise NotFoundError(f"Outline lesson {outline_lesson_id} not found.")
    tree = await self._content.get_outline(identity.tenant_id, lesson.outline_id)
    if tree is None:
      raise NotFoundError(f"Outline {lesson.outline_id} not found.")
    if tree.outline.approval_status != ApprovalStatus.APPROVED:
      raise ValidationError(f"Outline {tree.outline.id} is {tree.outline.approval_status.value}; approve it before generating lesson content.")

    job = GenerationJob(
      id=generate_job_id(),
      tenant_id=identity.tenant_id,
      job_type=JobType.LESSON_CONTENT,
      created_by_user_id=identity.user_id,
      course_id=tree.outline.course_id,
      outline_lesson_id=lesson.id,
      generation_input_id=tree.outline.generation_input_id,
      max_retries=self._default_max_retries,
      progress_message="Queued",
    )
    record = await self._jobs.create(job)
    logger.info("Lesson job submitted job_id=%s tenant_id=%s outline_lesson_id=%s", record.id, record.tenant_id, lesson.id)
    return record

  # Job control

  async def get_job(self, tenant_id: str, job_id: str) -> GenerationJob:
    job = await self._jobs.get(tenant_id, job_id)
    if job is None:
      raise NotFoundError(f"Job {job_id} not found.")
    return job

  async def list_jobs(self, tenant_id: str, job_filter: JobFilter) -> tuple[list[GenerationJob], int]:
    if job_filter.limit < 1 or job_filter.offset < 0:
      raise ValidationError("limit must be positive and offset must not be negative.")
    if job_filter.limit > _MAX_LIST_LIMIT:
      job_filter = replace(job_filter, limit=_MAX_LIST_LIMIT)
    return await self._jobs.list(tenant_id, job_filter)

  async def cancel_job(self, tenant_id: str, job_id: str) -> GenerationJob:
    """Cancel a queued or processing job; a running worker stops at its next checkpoint.

    A job that is already storing its output runs to completion and cannot be cancelled.
    """
    job = await self.get_job(tenant_id, job_id)
    _ensure_cancellable(job)
    cancelled = await self._jobs.cancel(tenant_id, job_id)
    if cancelled is None:
      # The job moved on between the read and the write.
      _ensure_cancellable(await self.get_job(tenant_id, job_id))
      raise InvalidTransitionError(f"Job {job_id} cannot be cancelled.")
    logger.info("Job cancelled job_id=%s tenant_id=%s", job_id, tenant_id)
    return cancelled

  async def retry_job(self, tenant_id: str, job_id: str) -> GenerationJob:
    """Re-enqueue a failed job on the same row, counting against its retry cap."""
    job = await self.get_job(tenant_id, job_id)
    self._retry_policy.ensure_retryable(job)
    requeued = await self._jobs.requeue(tenant_id, job_id)
    if requeued is None:
      self._retry_policy.ensure_retryable(await self.get_job(tenant_id, job_id))
      raise InvalidTransitionError(f"Job {job_id} could not be re-enqueued.")
    logger.info("Job re-enqueued job_id=%s tenant_id=%s retry_count=%s/%s", job_id, tenant_id, requeued.retry_count, requeued.max_retries)
    return requeued

  # Outlines

  async def get_outline(self, tenant_id: str, course_id: str) -> OutlineTree:
    tree = await self._content.get_latest_outline(tenant_id, course_id)
    if tree is None:
      raise NotFoundError(f"No outline exists for course {course_id}.")
    return tree

  async def approve_outline(self, identity: CallerIdentity, outline_id: str) -> CourseOutlineRecord:
    return await self._decide_outline(identity, outline_id, status=ApprovalStatus.APPROVED, reason=None)

  async def reject_outline(self, identity: CallerIdentity, outline_id: str, reason: str) -> CourseOutlineRecord:
    return await self._decide_outline(identity, outline_id, status=ApprovalStatus.REJECTED, reason=_require_text(reason, name="reason"))

  async def _decide_outline(self, identity: CallerIdentity, outline_id: str, *, status: ApprovalStatus, reason: str | None) -> CourseOutlineRecord:
    tree = await self._content.get_outline(identity.tenant_id, outline_id)
    if tree is None:
      raise NotFoundError(f"Outline {outline_id} not found.")
    if tree.outline.approval_status != ApprovalStatus.PENDING_REVIEW:
      raise InvalidTransitionError(f"Outline {outline_id} is already {tree.outline.approval_status.value}.")
    record = await self._content.set_outline_approval(identity.tenant_id, outline_id, status=status, actor_user_id=identity.user_id, reason=reason)
    if record is None:
      raise NotFoundError(f"Outline {outline_id} not found.")
    logger.info("Outline %s outline_id=%s tenant_id=%s user_id=%s", status.value, outline_id, identity.tenant_id, identity.user_id)
    return record

  # Generated lessons

  async def get_generated_lesson(self, tenant_id: str, lesson_id: str) -> LessonTree:
    tree = await self._content.get_generated_lesson(tenant_id, lesson_id)
    if tree is None:
      raise NotFoundError(f"Lesson {lesson_id} not found.")
    return tree

  async def list_generated_lessons(self, tenant_id: str, course_id: str) -> list[GeneratedLessonRecord]:
    return await self._content.list_generated_lessons(tenant_id, course_id)

  async def regenerate_component(self, identity: CallerIdentity, component_id: str, instruction: str) -> LessonComponentRecord:
    """Rewrite one lesson component with the provider and store the new payload."""
    instruction = _require_text(instruction, name="instruction")
    component = await self._content.get_component(identity.tenant_id, component_id)
    if component is None:
      raise NotFoundError(f"Component {component_id} not found.")
    lesson_tree = await self.get_generated_lesson(identity.tenant_id, component.generated_lesson_id)
    outline_lesson = await self._content.get_outline_lesson(identity.tenant_id, lesson_tree.lesson.outline_lesson_id)
    if outline_lesson is None:
      raise NotFoundError(f"Outline lesson {lesson_tree.lesson.outline_lesson_id} not found.")
    outline = await self._content.get_outline(identity.tenant_id, outline_lesson.outline_id)
    if outline is None or not outline.outline.generation_input_id:
      raise NotFoundError(f"Outline {outline_lesson.outline_id} not found.")
    generation_input = await self._content.get_generation_input(identity.tenant_id, outline.outline.generation_input_id)
    if generation_input is None:
      raise NotFoundError(f"Generation input {outline.outline.generation_input_id} not found.")

    audiences = await self._audiences.get_many(identity.tenant_id, list(generation_input.target_audience_ids))
    if not audiences:
      raise ValidationError("None of the course's target audiences could be resolved.")

    objectives = "; ".join(outline_lesson.learning_objectives)
    lesson_context = f"Lesson: {outline_lesson.title}\nDescription: {outline_lesson.description}\nLearning Objectives: {objectives}"
    request = RegenerateComponentRequest(component_type=component.component_type, current_payload=component.payload, instruction=instruction, audience=audiences[0], lesson_context=lesson_context)
    regenerated = await self._generator.regenerate_component(request)

    updated = await self._content.update_component_payload(identity.tenant_id, component.id, regenerated.payload)
    if updated is None:
      raise NotFoundError(f"Component {component_id} not found.")
    logger.info("Component regenerated component_id=%s tenant_id=%s tokens=%s", component.id, identity.tenant_id, regenerated.tokens_used)
    await self._invalidate_course(identity.tenant_id, lesson_tree.lesson.course_id)
    return updated

  async def _invalidate_course(self, tenant_id: str, course_id: str) -> None:
    try:
      await self._cache_invalidator.invalidate_course(tenant_id, course_id)
    except CollaboratorError as exc:
      logger.warning("Cache invalidation failed course_id=%s: %s", course_id, exc)
