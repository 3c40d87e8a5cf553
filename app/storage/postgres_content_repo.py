"""Postgres-backed repository for outlines, generated lessons and their components."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.schema.courses import CourseGenerationInputRow, CourseOutlineRow, GeneratedLessonRow, LessonComponentRow, OutlineLessonRow, OutlineSectionRow
from app.storage.content_repo import (
  ApprovalStatus,
  ComponentDraft,
  ContentRepository,
  CourseGenerationInputRecord,
  CourseOutlineRecord,
  GeneratedLessonRecord,
  LessonComponentRecord,
  LessonTree,
  OutlineLessonRecord,
  OutlineSectionDraft,
  OutlineSectionRecord,
  OutlineSectionTree,
  OutlineTree,
)
from app.storage.db_retry import execute_with_retry
from app.utils.ids import generate_id


class PostgresContentRepository(ContentRepository):
  """Persist course generation artifacts to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_or_create_generation_input(self, record: CourseGenerationInputRecord) -> tuple[CourseGenerationInputRecord, bool]:
    async def _upsert() -> tuple[CourseGenerationInputRecord, bool]:
      async with self._session_factory() as session:
        stmt = (
          select(CourseGenerationInputRow)
          .where(CourseGenerationInputRow.tenant_id == record.tenant_id, CourseGenerationInputRow.course_id == record.course_id)
          .order_by(CourseGenerationInputRow.created_at.desc())
          .limit(1)
        )
        latest = (await session.execute(stmt)).scalar_one_or_none()
        if latest is not None:
          existing = self._input_to_record(latest)
          if existing.same_parameters(record):
            return existing, False

        row = CourseGenerationInputRow(
          id=record.id,
          tenant_id=record.tenant_id,
          course_id=record.course_id,
          course_title=record.course_title,
          knowledge_source_ids=list(record.knowledge_source_ids),
          target_audience_ids=list(record.target_audience_ids),
          desired_outcome=record.desired_outcome,
          additional_context=record.additional_context,
          created_by_user_id=record.created_by_user_id,
        )
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return self._input_to_record(row), True

    return await execute_with_retry(operation_name="content.get_or_create_generation_input", func=_upsert, max_attempts=1)

  async def get_generation_input(self, tenant_id: str, input_id: str) -> CourseGenerationInputRecord | None:
    async def _get() -> CourseGenerationInputRecord | None:
      async with self._session_factory() as session:
        stmt = select(CourseGenerationInputRow).where(CourseGenerationInputRow.id == input_id, CourseGenerationInputRow.tenant_id == tenant_id)
        row = (await session.execute(stmt)).scalar_one_or_none()
        return self._input_to_record(row) if row else None

    return await execute_with_retry(operation_name="content.get_generation_input", func=_get)

  async def save_outline(self, tenant_id: str, *, course_id: str, generation_input_id: str | None, job_id: str | None, sections: list[OutlineSectionDraft]) -> OutlineTree:
    async def _save() -> OutlineTree:
      async with self._session_factory() as session:
        async with session.begin():
          # Lock the course's outline versions so concurrent saves cannot pick the same number.
          versions = select(CourseOutlineRow.version).where(CourseOutlineRow.tenant_id == tenant_id, CourseOutlineRow.course_id == course_id).with_for_update()
          existing_versions = (await session.execute(versions)).scalars().all()
          next_version = max(existing_versions, default=0) + 1

          outline = CourseOutlineRow(id=generate_id(), tenant_id=tenant_id, course_id=course_id, generation_input_id=generation_input_id, job_id=job_id, version=next_version, approval_status=ApprovalStatus.PENDING_REVIEW)
          session.add(outline)
          await session.flush()

          section_trees: list[OutlineSectionTree] = []
          for section_position, draft in enumerate(sections, start=1):
            section = OutlineSectionRow(id=generate_id(), tenant_id=tenant_id, outline_id=outline.id, title=draft.title, description=draft.description, position=section_position)
            session.add(section)
            await session.flush()
            lessons = [
              OutlineLessonRow(
                id=generate_id(),
                tenant_id=tenant_id,
                outline_id=outline.id,
                section_id=section.id,
                title=lesson.title,
                description=lesson.description,
                position=lesson_position,
                estimated_duration_minutes=lesson.estimated_duration_minutes,
                learning_objectives=list(lesson.learning_objectives),
                is_last_in_section=lesson.is_last_in_section,
                is_last_in_course=lesson.is_last_in_course,
              )
              for lesson_position, lesson in enumerate(draft.lessons, start=1)
            ]
            session.add_all(lessons)
            section_trees.append(OutlineSectionTree(section=self._section_to_record(section), lessons=tuple(self._lesson_to_record(lesson) for lesson in lessons)))

          await session.flush()
          await session.refresh(outline)
          return OutlineTree(outline=self._outline_to_record(outline), sections=tuple(section_trees))

    return await execute_with_retry(operation_name="content.save_outline", func=_save, output_lost=True)

  async def get_outline(self, tenant_id: str, outline_id: str) -> OutlineTree | None:
    async def _get() -> OutlineTree | None:
      async with self._session_factory() as session:
        stmt = select(CourseOutlineRow).where(CourseOutlineRow.id == outline_id, CourseOutlineRow.tenant_id == tenant_id)
        outline = (await session.execute(stmt)).scalar_one_or_none()
        if outline is None:
          return None
        return await self._load_tree(session, outline)

    return await execute_with_retry(operation_name="content.get_outline", func=_get)

  async def get_latest_outline(self, tenant_id: str, course_id: str) -> OutlineTree | None:
    async def _get() -> OutlineTree | None:
      async with self._session_factory() as session:
        stmt = select(CourseOutlineRow).where(CourseOutlineRow.tenant_id == tenant_id, CourseOutlineRow.course_id == course_id).order_by(CourseOutlineRow.version.desc()).limit(1)
        outline = (await session.execute(stmt)).scalar_one_or_none()
        if outline is None:
          return None
        return await self._load_tree(session, outline)

    return await execute_with_retry(operation_name="content.get_latest_outline", func=_get)

  async def get_outline_lesson(self, tenant_id: str, outline_lesson_id: str) -> OutlineLessonRecord | None:
    async def _get() -> OutlineLessonRecord | None:
      async with self._session_factory() as session:
        stmt = select(OutlineLessonRow).where(OutlineLessonRow.id == outline_lesson_id, OutlineLessonRow.tenant_id == tenant_id)
        row = (await session.execute(stmt)).scalar_one_or_none()
        return self._lesson_to_record(row) if row else None

    return await execute_with_retry(operation_name="content.get_outline_lesson", func=_get)

  async def set_outline_approval(self, tenant_id: str, outline_id: str, *, status: ApprovalStatus, actor_user_id: str, reason: str | None = None) -> CourseOutlineRecord | None:
    async def _set() -> CourseOutlineRecord | None:
      async with self._session_factory() as session:
        stmt = select(CourseOutlineRow).where(CourseOutlineRow.id == outline_id, CourseOutlineRow.tenant_id == tenant_id).with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
          return None
        row.approval_status = status
        row.approved_by_user_id = actor_user_id if status == ApprovalStatus.APPROVED else None
        row.approved_at = datetime.now(UTC) if status == ApprovalStatus.APPROVED else None
        row.rejection_reason = reason if status == ApprovalStatus.REJECTED else None
        await session.commit()
        await session.refresh(row)
        return self._outline_to_record(row)

    return await execute_with_retry(operation_name="content.set_outline_approval", func=_set)

  async def save_generated_lesson(self, tenant_id: str, *, course_id: str, outline_lesson_id: str, job_id: str | None, segue_text: str | None, components: list[ComponentDraft]) -> LessonTree:
    async def _save() -> LessonTree:
      async with self._session_factory() as session:
        async with session.begin():
          # A re-run replaces the previous lesson; components cascade with it.
          await session.execute(delete(GeneratedLessonRow).where(GeneratedLessonRow.tenant_id == tenant_id, GeneratedLessonRow.outline_lesson_id == outline_lesson_id))
          lesson = GeneratedLessonRow(id=generate_id(), tenant_id=tenant_id, course_id=course_id, outline_lesson_id=outline_lesson_id, job_id=job_id, segue_text=segue_text)
          session.add(lesson)
          await session.flush()
          rows = [LessonComponentRow(id=generate_id(), tenant_id=tenant_id, generated_lesson_id=lesson.id, component_type=draft.component_type, position=position, payload=draft.payload) for position, draft in enumerate(components, start=1)]
          session.add_all(rows)
          await session.flush()
          await session.refresh(lesson)
          for row in rows:
            await session.refresh(row)
          return LessonTree(lesson=self._generated_to_record(lesson), components=tuple(self._component_to_record(row) for row in rows))

    return await execute_with_retry(operation_name="content.save_generated_lesson", func=_save, output_lost=True)

  async def get_generated_lesson(self, tenant_id: str, lesson_id: str) -> LessonTree | None:
    async def _get() -> LessonTree | None:
      async with self._session_factory() as session:
        stmt = select(GeneratedLessonRow).where(GeneratedLessonRow.id == lesson_id, GeneratedLessonRow.tenant_id == tenant_id)
        lesson = (await session.execute(stmt)).scalar_one_or_none()
        if lesson is None:
          return None
        component_stmt = select(LessonComponentRow).where(LessonComponentRow.generated_lesson_id == lesson.id, LessonComponentRow.tenant_id == tenant_id).order_by(LessonComponentRow.position)
        components = (await session.execute(component_stmt)).scalars().all()
        return LessonTree(lesson=self._generated_to_record(lesson), components=tuple(self._component_to_record(row) for row in components))

    return await execute_with_retry(operation_name="content.get_generated_lesson", func=_get)

  async def list_generated_lessons(self, tenant_id: str, course_id: str) -> list[GeneratedLessonRecord]:
    async def _list() -> list[GeneratedLessonRecord]:
      async with self._session_factory() as session:
        stmt = (
          select(GeneratedLessonRow)
          .join(OutlineLessonRow, OutlineLessonRow.id == GeneratedLessonRow.outline_lesson_id)
          .join(OutlineSectionRow, OutlineSectionRow.id == OutlineLessonRow.section_id)
          .where(GeneratedLessonRow.tenant_id == tenant_id, GeneratedLessonRow.course_id == course_id)
          .order_by(OutlineSectionRow.position, OutlineLessonRow.position)
        )
        rows = (await session.execute(stmt)).scalars().all()
        return [self._generated_to_record(row) for row in rows]

    return await execute_with_retry(operation_name="content.list_generated_lessons", func=_list)

  async def get_component(self, tenant_id: str, component_id: str) -> LessonComponentRecord | None:
    async def _get() -> LessonComponentRecord | None:
      async with self._session_factory() as session:
        stmt = select(LessonComponentRow).where(LessonComponentRow.id == component_id, LessonComponentRow.tenant_id == tenant_id)
        row = (await session.execute(stmt)).scalar_one_or_none()
        return self._component_to_record(row) if row else None

    return await execute_with_retry(operation_name="content.get_component", func=_get)

  async def update_component_payload(self, tenant_id: str, component_id: str, payload: dict[str, Any]) -> LessonComponentRecord | None:
    async def _update() -> LessonComponentRecord | None:
      async with self._session_factory() as session:
        stmt = select(LessonComponentRow).where(LessonComponentRow.id == component_id, LessonComponentRow.tenant_id == tenant_id).with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
          return None
        row.payload = payload
        row.updated_at = func.now()
        await session.commit()
        await session.refresh(row)
        return self._component_to_record(row)

    return await execute_with_retry(operation_name="content.update_component_payload", func=_update, output_lost=True)

  async def _load_tree(self, session: AsyncSession, outline: CourseOutlineRow) -> OutlineTree:
    section_stmt = select(OutlineSectionRow).where(OutlineSectionRow.outline_id == outline.id, OutlineSectionRow.tenant_id == outline.tenant_id).order_by(OutlineSectionRow.position)
    sections = (await session.execute(section_stmt)).scalars().all()
    lesson_stmt = select(OutlineLessonRow).where(OutlineLessonRow.outline_id == outline.id, OutlineLessonRow.tenant_id == outline.tenant_id).order_by(OutlineLessonRow.position)
    lessons = (await session.execute(lesson_stmt)).scalars().all()

    lessons_by_section: dict[str, list[OutlineLessonRecord]] = {}
    for lesson in lessons:
      lessons_by_section.setdefault(lesson.section_id, []).append(self._lesson_to_record(lesson))

    trees = tuple(OutlineSectionTree(section=self._section_to_record(section), lessons=tuple(lessons_by_section.get(section.id, []))) for section in sections)
    return OutlineTree(outline=self._outline_to_record(outline), sections=trees)

  def _input_to_record(self, row: CourseGenerationInputRow) -> CourseGenerationInputRecord:
    return CourseGenerationInputRecord(
      id=row.id,
      tenant_id=row.tenant_id,
      course_id=row.course_id,
      course_title=row.course_title,
      knowledge_source_ids=tuple(row.knowledge_source_ids or ()),
      target_audience_ids=tuple(row.target_audience_ids or ()),
      desired_outcome=row.desired_outcome,
      additional_context=row.additional_context,
      created_by_user_id=row.created_by_user_id,
      created_at=row.created_at,
    )

  def _outline_to_record(self, row: CourseOutlineRow) -> CourseOutlineRecord:
    return CourseOutlineRecord(
      id=row.id,
      tenant_id=row.tenant_id,
      course_id=row.course_id,
      generation_input_id=row.generation_input_id,
      job_id=row.job_id,
      version=row.version,
      approval_status=ApprovalStatus(row.approval_status),
      approved_by_user_id=row.approved_by_user_id,
      approved_at=row.approved_at,
      rejection_reason=row.rejection_reason,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )

  def _section_to_record(self, row: OutlineSectionRow) -> OutlineSectionRecord:
    return OutlineSectionRecord(id=row.id, tenant_id=row.tenant_id, outline_id=row.outline_id, title=row.title, description=row.description, position=row.position)

  def _lesson_to_record(self, row: OutlineLessonRow) -> OutlineLessonRecord:
    return OutlineLessonRecord(
      id=row.id,
      tenant_id=row.tenant_id,
      outline_id=row.outline_id,
      section_id=row.section_id,
      title=row.title,
      description=row.description,
      position=row.position,
      estimated_duration_minutes=row.estimated_duration_minutes,
      learning_objectives=tuple(row.learning_objectives or ()),
      is_last_in_section=row.is_last_in_section,
      is_last_in_course=row.is_last_in_course,
    )

  def _generated_to_record(self, row: GeneratedLessonRow) -> GeneratedLessonRecord:
    return GeneratedLessonRecord(id=row.id, tenant_id=row.tenant_id, course_id=row.course_id, outline_lesson_id=row.outline_lesson_id, job_id=row.job_id, segue_text=row.segue_text, created_at=row.created_at)

  def _component_to_record(self, row: LessonComponentRow) -> LessonComponentRecord:
    return LessonComponentRecord(id=row.id, tenant_id=row.tenant_id, generated_lesson_id=row.generated_lesson_id, component_type=row.component_type, position=row.position, payload=dict(row.payload), updated_at=row.updated_at)
