"""Create generation job and course content tables.

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5c1e9a7d2b40"
down_revision = None
branch_labels = None
depends_on = None

_APPROVAL_STATUS = postgresql.ENUM("pending_review", "approved", "rejected", name="outline_approval_status", create_type=False)
_COMPONENT_TYPE = postgresql.ENUM("text", "heading", "image", "quiz", name="lesson_component_type", create_type=False)


def upgrade() -> None:
  """Upgrade schema."""
  bind = op.get_bind()
  _APPROVAL_STATUS.create(bind, checkfirst=True)
  _COMPONENT_TYPE.create(bind, checkfirst=True)

  op.create_table(
    "generation_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=True),
    sa.Column("outline_lesson_id", sa.String(), nullable=True),
    sa.Column("generation_input_id", sa.String(), nullable=True),
    sa.Column("created_by_user_id", sa.String(), nullable=False),
    sa.Column("sub_state", sa.String(), nullable=True),
    sa.Column("progress_percent", sa.Integer(), nullable=False),
    sa.Column("progress_message", sa.Text(), nullable=True),
    sa.Column("tokens_used", sa.Integer(), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("error_code", sa.String(), nullable=True),
    sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("max_retries", sa.Integer(), nullable=False),
    sa.Column("retry_count", sa.Integer(), nullable=False),
    sa.Column("worker_id", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("heartbeat_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_generation_jobs_tenant_id"), "generation_jobs", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_course_id"), "generation_jobs", ["course_id"], unique=False)
  op.create_index("ix_generation_jobs_claimable", "generation_jobs", ["status", "created_at"], unique=False, postgresql_where=sa.text("status IN ('queued', 'processing')"))
  op.create_index("ix_generation_jobs_tenant_created", "generation_jobs", ["tenant_id", "created_at"], unique=False)

  op.create_table(
    "course_generation_inputs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("course_title", sa.String(), nullable=False),
    sa.Column("knowledge_source_ids", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("target_audience_ids", postgresql.ARRAY(sa.String()), nullable=False),
    sa.Column("desired_outcome", sa.Text(), nullable=False),
    sa.Column("additional_context", sa.Text(), nullable=False),
    sa.Column("created_by_user_id", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_course_generation_inputs_tenant_id"), "course_generation_inputs", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_course_generation_inputs_course_id"), "course_generation_inputs", ["course_id"], unique=False)

  op.create_table(
    "course_outlines",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("generation_input_id", sa.String(), nullable=True),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("approval_status", _APPROVAL_STATUS, nullable=False),
    sa.Column("approved_by_user_id", sa.String(), nullable=True),
    sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("rejection_reason", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["generation_input_id"], ["course_generation_inputs.id"], ondelete="SET NULL"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("tenant_id", "course_id", "version", name="ux_course_outlines_course_version"),
  )
  op.create_index(op.f("ix_course_outlines_tenant_id"), "course_outlines", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_course_outlines_course_id"), "course_outlines", ["course_id"], unique=False)

  op.create_table(
    "outline_sections",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("outline_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(["outline_id"], ["course_outlines.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("outline_id", "position", name="ux_outline_sections_position"),
  )
  op.create_index(op.f("ix_outline_sections_tenant_id"), "outline_sections", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_outline_sections_outline_id"), "outline_sections", ["outline_id"], unique=False)

  op.create_table(
    "outline_lessons",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("outline_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("estimated_duration_minutes", sa.Integer(), nullable=False),
    sa.Column("learning_objectives", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("is_last_in_section", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("is_last_in_course", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.ForeignKeyConstraint(["outline_id"], ["course_outlines.id"], ondelete="CASCADE"),
    sa.ForeignKeyConstraint(["section_id"], ["outline_sections.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("section_id", "position", name="ux_outline_lessons_position"),
  )
  op.create_index(op.f("ix_outline_lessons_tenant_id"), "outline_lessons", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_outline_lessons_outline_id"), "outline_lessons", ["outline_id"], unique=False)
  op.create_index(op.f("ix_outline_lessons_section_id"), "outline_lessons", ["section_id"], unique=False)

  op.create_table(
    "generated_lessons",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("outline_lesson_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("segue_text", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["outline_lesson_id"], ["outline_lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("tenant_id", "outline_lesson_id", name="ux_generated_lessons_outline_lesson"),
  )
  op.create_index(op.f("ix_generated_lessons_tenant_id"), "generated_lessons", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_generated_lessons_course_id"), "generated_lessons", ["course_id"], unique=False)

  op.create_table(
    "lesson_components",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("generated_lesson_id", sa.String(), nullable=False),
    sa.Column("component_type", _COMPONENT_TYPE, nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["generated_lesson_id"], ["generated_lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("generated_lesson_id", "position", name="ux_lesson_components_position"),
  )
  op.create_index(op.f("ix_lesson_components_tenant_id"), "lesson_components", ["tenant_id"], unique=False)
  op.create_index(op.f("ix_lesson_components_generated_lesson_id"), "lesson_components", ["generated_lesson_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_table("lesson_components")
  op.drop_table("generated_lessons")
  op.drop_table("outline_lessons")
  op.drop_table("outline_sections")
  op.drop_table("course_outlines")
  op.drop_table("course_generation_inputs")
  op.drop_index("ix_generation_jobs_tenant_created", table_name="generation_jobs")
  op.drop_index("ix_generation_jobs_claimable", table_name="generation_jobs")
  op.drop_table("generation_jobs")
  _COMPONENT_TYPE.drop(op.get_bind(), checkfirst=True)
  _APPROVAL_STATUS.drop(op.get_bind(), checkfirst=True)
