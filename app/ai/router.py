"""Routing utilities for provider/model selection."""

from __future__ import annotations

from app.ai.generator import CourseGenerator, StructuredCourseGenerator
from app.ai.providers.base import AIModel
from app.ai.providers.gemini import GeminiProvider
from app.config import Settings


def get_model(settings: Settings) -> AIModel:
  """Return the configured structured-output model client."""
  if not settings.gemini_api_key:
    raise ValueError("GEMINI_API_KEY must be set to generate course content.")
  return GeminiProvider(api_key=settings.gemini_api_key).get_model(settings.gemini_model)


def build_course_generator(settings: Settings) -> CourseGenerator:
  return StructuredCourseGenerator(get_model(settings), outline_chunks_per_source=settings.outline_chunks_per_source, lesson_chunks_per_source=settings.lesson_chunks_per_source)
