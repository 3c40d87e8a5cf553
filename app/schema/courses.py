from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import ARRAY, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.storage.content_repo import ApprovalStatus, ComponentType


def _enum_values(enum_cls: type[PyEnum]) -> list[str]:
  """Persist enum values (e.g. `pending_review`) instead of enum names."""
  return [str(member.value) for member in enum_cls]


class CourseGenerationInputRow(Base):
  __tablename__ = "course_generation_inputs"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  course_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  course_title: Mapped[str] = mapped_column(String, nullable=False)
  knowledge_source_ids: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False)
  target_audience_ids: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False)
  desired_outcome: Mapped[str] = mapped_column(Text, nullable=False, default="")
  additional_context: Mapped[str] = mapped_column(Text, nullable=False, default="")
  created_by_user_id: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CourseOutlineRow(Base):
  __tablename__ = "course_outlines"
  __table_args__ = (UniqueConstraint("tenant_id", "course_id", "version", name="ux_course_outlines_course_version"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  course_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  generation_input_id: Mapped[str | None] = mapped_column(ForeignKey("course_generation_inputs.id", ondelete="SET NULL"), nullable=True)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False)
  approval_status: Mapped[ApprovalStatus] = mapped_column(SAEnum(ApprovalStatus, name="outline_approval_status", values_callable=_enum_values), nullable=False)
  approved_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
  approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class OutlineSectionRow(Base):
  __tablename__ = "outline_sections"
  __table_args__ = (UniqueConstraint("outline_id", "position", name="ux_outline_sections_position"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  outline_id: Mapped[str] = mapped_column(ForeignKey("course_outlines.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  position: Mapped[int] = mapped_column(Integer, nullable=False)


class OutlineLessonRow(Base):
  __tablename__ = "outline_lessons"
  __table_args__ = (UniqueConstraint("section_id", "position", name="ux_outline_lessons_position"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  outline_id: Mapped[str] = mapped_column(ForeignKey("course_outlines.id", ondelete="CASCADE"), nullable=False, index=True)
  section_id: Mapped[str] = mapped_column(ForeignKey("outline_sections.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  estimated_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  learning_objectives: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
  is_last_in_section: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  is_last_in_course: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class GeneratedLessonRow(Base):
  __tablename__ = "generated_lessons"
  __table_args__ = (UniqueConstraint("tenant_id", "outline_lesson_id", name="ux_generated_lessons_outline_lesson"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  course_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  outline_lesson_id: Mapped[str] = mapped_column(ForeignKey("outline_lessons.id", ondelete="CASCADE"), nullable=False)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  segue_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LessonComponentRow(Base):
  __tablename__ = "lesson_components"
  __table_args__ = (UniqueConstraint("generated_lesson_id", "position", name="ux_lesson_components_position"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  generated_lesson_id: Mapped[str] = mapped_column(ForeignKey("generated_lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  component_type: Mapped[ComponentType] = mapped_column(SAEnum(ComponentType, name="lesson_component_type", values_callable=_enum_values), nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
