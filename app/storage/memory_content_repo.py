"""In-process content repository for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

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
from app.utils.ids import generate_id


def _utcnow() -> datetime:
  return datetime.now(UTC)


class InMemoryContentRepository(ContentRepository):
  """Dict-backed content store; trees are built completely before they are published."""

  def __init__(self) -> None:
    self._lock = asyncio.Lock()
    self._inputs: dict[str, CourseGenerationInputRecord] = {}
    self._outlines: dict[str, OutlineTree] = {}
    self._lessons: dict[str, LessonTree] = {}

  async def get_or_create_generation_input(self, record: CourseGenerationInputRecord) -> tuple[CourseGenerationInputRecord, bool]:
    async with self._lock:
      same_course = [row for row in self._inputs.values() if row.tenant_id == record.tenant_id and row.course_id == record.course_id]
      if same_course:
        latest = same_course[-1]
        if latest.same_parameters(record):
          return latest, False
      stored = replace(record, created_at=_utcnow())
      self._inputs[stored.id] = stored
      return stored, True

  async def get_generation_input(self, tenant_id: str, input_id: str) -> CourseGenerationInputRecord | None:
    record = self._inputs.get(input_id)
    if record is None or record.tenant_id != tenant_id:
      return None
    return record

  async def save_outline(self, tenant_id: str, *, course_id: str, generation_input_id: str | None, job_id: str | None, sections: list[OutlineSectionDraft]) -> OutlineTree:
    async with self._lock:
      versions = [tree.outline.version for tree in self._outlines.values() if tree.outline.tenant_id == tenant_id and tree.outline.course_id == course_id]
      now = _utcnow()
      outline = CourseOutlineRecord(id=generate_id(), tenant_id=tenant_id, course_id=course_id, generation_input_id=generation_input_id, job_id=job_id, version=max(versions, default=0) + 1, approval_status=ApprovalStatus.PENDING_REVIEW, created_at=now, updated_at=now)

      section_trees: list[OutlineSectionTree] = []
      for section_position, draft in enumerate(sections, start=1):
        section = OutlineSectionRecord(id=generate_id(), tenant_id=tenant_id, outline_id=outline.id, title=draft.title, description=draft.description, position=section_position)
        lessons = tuple(
          OutlineLessonRecord(
            id=generate_id(),
            tenant_id=tenant_id,
            outline_id=outline.id,
            section_id=section.id,
            title=lesson.title,
            description=lesson.description,
            position=lesson_position,
            estimated_duration_minutes=lesson.estimated_duration_minutes,
            learning_objectives=tuple(lesson.learning_objectives),
            is_last_in_section=lesson.is_last_in_section,
            is_last_in_course=lesson.is_last_in_course,
          )
          for lesson_position, lesson in enumerate(draft.lessons, start=1)
        )
        section_trees.append(OutlineSectionTree(section=section, lessons=lessons))

      tree = OutlineTree(outline=outline, sections=tuple(section_trees))
      self._outlines[outline.id] = tree
      return tree

  async def get_outline(self, tenant_id: str, outline_id: str) -> OutlineTree | None:
    tree = self._outlines.get(outline_id)
    if tree is None or tree.outline.tenant_id != tenant_id:
      return None
    return tree

  async def get_latest_outline(self, tenant_id: str, course_id: str) -> OutlineTree | None:
    trees = [tree for tree in self._outlines.values() if tree.outline.tenant_id == tenant_id and tree.outline.course_id == course_id]
    if not trees:
      return None
    return max(trees, key=lambda tree: tree.outline.version)

  async def get_outline_lesson(self, tenant_id: str, outline_lesson_id: str) -> OutlineLessonRecord | None:
    for tree in self._outlines.values():
      if tree.outline.tenant_id != tenant_id:
        continue
      found = tree.find_lesson(outline_lesson_id)
      if found is not None:
        return found[1]
    return None

  async def set_outline_approval(self, tenant_id: str, outline_id: str, *, status: ApprovalStatus, actor_user_id: str, reason: str | None = None) -> CourseOutlineRecord | None:
    async with self._lock:
      tree = self._outlines.get(outline_id)
      if tree is None or tree.outline.tenant_id != tenant_id:
        return None
      approved = status == ApprovalStatus.APPROVED
      outline = replace(
        tree.outline,
        approval_status=status,
        approved_by_user_id=actor_user_id if approved else None,
        approved_at=_utcnow() if approved else None,
        rejection_reason=reason if status == ApprovalStatus.REJECTED else None,
        updated_at=_utcnow(),
      )
      self._outlines[outline_id] = replace(tree, outline=outline)
      return outline

  async def save_generated_lesson(self, tenant_id: str, *, course_id: str, outline_lesson_id: str, job_id: str | None, segue_text: str | None, components: list[ComponentDraft]) -> LessonTree:
    async with self._lock:
      for lesson_id, existing in list(self._lessons.items()):
        if existing.lesson.tenant_id == tenant_id and existing.lesson.outline_lesson_id == outline_lesson_id:
          del self._lessons[lesson_id]

      now = _utcnow()
      lesson = GeneratedLessonRecord(id=generate_id(), tenant_id=tenant_id, course_id=course_id, outline_lesson_id=outline_lesson_id, job_id=job_id, segue_text=segue_text, created_at=now)
      rows = tuple(LessonComponentRecord(id=generate_id(), tenant_id=tenant_id, generated_lesson_id=lesson.id, component_type=draft.component_type, position=position, payload=copy.deepcopy(draft.payload), updated_at=now) for position, draft in enumerate(components, start=1))
      tree = LessonTree(lesson=lesson, components=rows)
      self._lessons[lesson.id] = tree
      return tree

  async def get_generated_lesson(self, tenant_id: str, lesson_id: str) -> LessonTree | None:
    tree = self._lessons.get(lesson_id)
    if tree is None or tree.lesson.tenant_id != tenant_id:
      return None
    return tree

  async def list_generated_lessons(self, tenant_id: str, course_id: str) -> list[GeneratedLessonRecord]:
    order: dict[str, tuple[int, int]] = {}
    for tree in self._outlines.values():
      for section_tree in tree.sections:
        for lesson in section_tree.lessons:
          order[lesson.id] = (section_tree.section.position, lesson.position)
    lessons = [tree.lesson for tree in self._lessons.values() if tree.lesson.tenant_id == tenant_id and tree.lesson.course_id == course_id]
    return sorted(lessons, key=lambda lesson: order.get(lesson.outline_lesson_id, (0, 0)))

  async def get_component(self, tenant_id: str, component_id: str) -> LessonComponentRecord | None:
    for tree in self._lessons.values():
      for component in tree.components:
        if component.id == component_id and component.tenant_id == tenant_id:
          return component
    return None

  async def update_component_payload(self, tenant_id: str, component_id: str, payload: dict[str, Any]) -> LessonComponentRecord | None:
    async with self._lock:
      for lesson_id, tree in self._lessons.items():
        for index, component in enumerate(tree.components):
          if component.id != component_id or component.tenant_id != tenant_id:
            continue
          updated = replace(component, payload=copy.deepcopy(payload), updated_at=_utcnow())
          components = tree.components[:index] + (updated,) + tree.components[index + 1 :]
          self._lessons[lesson_id] = replace(tree, components=components)
          return updated
    return None
