from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class GenerationJobRow(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (
    Index("ix_generation_jobs_claimable", "status", "created_at", postgresql_where=text("status IN ('queued', 'processing')")),
    Index("ix_generation_jobs_tenant_created", "tenant_id", "created_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  course_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  outline_lesson_id: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_input_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_by_user_id: Mapped[str] = mapped_column(String, nullable=False)
  sub_state: Mapped[str | None] = mapped_column(String, nullable=True)
  progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  progress_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_code: Mapped[str | None] = mapped_column(String, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  worker_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  heartbeat_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
