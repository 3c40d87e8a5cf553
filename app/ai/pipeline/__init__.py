"""Pipeline contracts and orchestration helpers."""

from app.ai.pipeline.contracts import LessonContentRequest, LessonContentResult, OutlineRequest, OutlineResult, RegenerateComponentRequest, RegeneratedComponent, SectionExpansionResult, SectionPlanResult

__all__ = ["LessonContentRequest", "LessonContentResult", "OutlineRequest", "OutlineResult", "RegenerateComponentRequest", "RegeneratedComponent", "SectionExpansionResult", "SectionPlanResult"]
