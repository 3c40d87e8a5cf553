"""Dependency-injected job handler dispatch."""

from __future__ import annotations

from typing import Protocol

from app.ai.orchestrator import CourseGenerationOrchestrator
from app.jobs.models import GenerationJob, JobType
from app.jobs.progress import JobProgressTracker


class JobHandler(Protocol):
  """Processor contract for one job type."""

  async def process(self, tracker: JobProgressTracker) -> GenerationJob:
    """Drive the tracked job to completion and return its final record."""


class JobHandlerRegistry:
  """Registry mapping every job type to its handler."""

  def __init__(self, handlers: dict[JobType, JobHandler]) -> None:
    missing = [job_type.value for job_type in JobType if job_type not in handlers]
    if missing:
      raise ValueError(f"No handler registered for job types: {', '.join(missing)}")
    self._handlers = dict(handlers)

  def resolve(self, job_type: JobType) -> JobHandler:
    return self._handlers[job_type]


class _OutlineHandler:
  def __init__(self, orchestrator: CourseGenerationOrchestrator) -> None:
    self._orchestrator = orchestrator

  async def process(self, tracker: JobProgressTracker) -> GenerationJob:
    return await self._orchestrator.run_outline(tracker)


class _LessonContentHandler:
  def __init__(self, orchestrator: CourseGenerationOrchestrator) -> None:
    self._orchestrator = orchestrator

  async def process(self, tracker: JobProgressTracker) -> GenerationJob:
    return await self._orchestrator.run_lesson(tracker)


def build_default_registry(orchestrator: CourseGenerationOrchestrator) -> JobHandlerRegistry:
  return JobHandlerRegistry({JobType.OUTLINE: _OutlineHandler(orchestrator), JobType.LESSON_CONTENT: _LessonContentHandler(orchestrator)})
