"""Prompt builders for outline, lesson and component generation."""

from __future__ import annotations

import json
from collections.abc import Sequence

from app.ai.pipeline.contracts import LessonContentRequest, OutlineRequest, PlannedSectionRequest, RegenerateComponentRequest
from app.integrations.contracts import KnowledgeDigest, TargetAudience

OUTLINE_CHUNKS_PER_SOURCE = 5
LESSON_CHUNKS_PER_SOURCE = 3

_ROLE_PREAMBLE = "You are an expert instructional designer creating engaging, practical training content."


def _bullets(items: Sequence[str]) -> str:
  if not items:
    return "- (none provided)"
  return "\n".join(f"- {item}" for item in items)


def _format_audience(audience: TargetAudience) -> str:
  lines = [f"Role: {audience.role}", f"Experience Level: {audience.experience_level}", "Learning Goals:", _bullets(audience.learning_goals), "Prerequisites:", _bullets(audience.prerequisites), "Challenges:", _bullets(audience.challenges)]
  if audience.industry_context:
    lines.append(f"Industry Context: {audience.industry_context}")
  return "\n".join(lines)


def _format_knowledge(digests: Sequence[KnowledgeDigest], *, max_chunks: int | None) -> str:
  """Render knowledge digests, inlining at most ``max_chunks`` chunks per source.

  ``max_chunks=None`` renders summaries and keywords only.
  """
  blocks: list[str] = []
  for digest in digests:
    lines = [f"### {digest.name} ({digest.domain})"]
    if digest.summary:
      lines.append(f"Summary: {digest.summary}")
    if digest.keywords:
      lines.append(f"Keywords: {', '.join(digest.keywords)}")
    if max_chunks:
      for index, chunk in enumerate(digest.chunks[:max_chunks], start=1):
        lines.append(f"Excerpt {index}: {chunk}")
    blocks.append("\n".join(lines))
  return "\n\n".join(blocks)


def build_section_plan_prompt(request: OutlineRequest, *, max_chunks: int = OUTLINE_CHUNKS_PER_SOURCE) -> str:
  """First outline call: sections with lesson titles only."""
  parts = [
    _ROLE_PREAMBLE,
    "Design the section structure of a training course.",
    f"## Course Information\nTitle: {request.course_title}\nDesired Outcome: {request.desired_outcome}",
    f"## Target Audience\n{_format_audience(request.audience)}",
    f"## Subject Matter Expert Knowledge\n{_format_knowledge(request.knowledge, max_chunks=max_chunks)}",
  ]
  if request.additional_context:
    parts.append(f"## Additional Context\n{request.additional_context}")
  parts.append(
    "## Instructions\n"
    "- Organize the course into logical sections that build on each other.\n"
    "- Give each section a clear title and a one or two sentence description.\n"
    "- List 2-5 lesson titles per section; titles only, no lesson detail.\n"
    "- Ground every section in the knowledge above and pitch it at the audience's experience level."
  )
  return "\n\n".join(parts)


def build_section_lessons_prompt(request: OutlineRequest, section: PlannedSectionRequest) -> str:
  """Second outline call: expand one section's lesson titles into detailed lessons."""
  parts = [
    _ROLE_PREAMBLE,
    f"Expand the lessons of one section of the course \"{request.course_title}\".",
    f"## Section\nTitle: {section.title}\nDescription: {section.description}",
    f"## Lesson Titles To Expand\n{_bullets(section.lesson_titles)}",
    f"## Target Audience\n{_format_audience(request.audience)}",
    f"## Knowledge Summaries\n{_format_knowledge(request.knowledge, max_chunks=None)}",
    "## Instructions\n"
    "- Return one lesson per title above, in the same order, keeping the titles.\n"
    "- Write a short description of what the lesson covers.\n"
    "- Estimate duration (5-20 minutes).\n"
    "- Include 2-4 specific, measurable learning objectives.",
  ]
  return "\n\n".join(parts)


def build_lesson_content_prompt(request: LessonContentRequest, *, max_chunks: int = LESSON_CHUNKS_PER_SOURCE) -> str:
  """Prompt for one lesson's components and segue."""
  position_lines = [f"Section: {request.section_title}"]
  if request.previous_lesson_title:
    position_lines.append(f"Previous Lesson: {request.previous_lesson_title}")
  if request.next_lesson_title:
    position_lines.append(f"Next Lesson: {request.next_lesson_title}")

  if request.is_last_in_course or not request.next_lesson_title:
    segue_instruction = "This is the final lesson of the course: provide a course conclusion in segue_text."
  else:
    segue_instruction = f"Include a segue_text that transitions to the next lesson: \"{request.next_lesson_title}\"."

  parts = [
    _ROLE_PREAMBLE,
    f"Write the full content of the lesson \"{request.lesson_title}\" in the course \"{request.course_title}\".",
    f"## Lesson\nDescription: {request.lesson_description}\nLearning Objectives:\n{_bullets(request.learning_objectives)}",
    "## Position In Course\n" + "\n".join(position_lines),
    f"## Target Audience\n{_format_audience(request.audience)}",
    f"## Subject Matter Expert Knowledge\n{_format_knowledge(request.knowledge, max_chunks=max_chunks)}",
    "## Instructions\n"
    "- Return an ordered list of components; each has a component_type of text, heading, image or quiz.\n"
    "- Fill only the fields that belong to the component's type.\n"
    "- text: text_html with simple semantic HTML. heading: heading_level 1-4 and heading_text.\n"
    "- image: image_description for an illustrator, image_alt_text and image_caption.\n"
    "- quiz: quiz_question, 2-4 quiz_options with ids, quiz_correct_answer_id and quiz_explanation.\n"
    "- Cover every learning objective and end with at least one quiz.\n"
    f"- {segue_instruction}",
  ]
  return "\n\n".join(parts)


def build_regenerate_component_prompt(request: RegenerateComponentRequest) -> str:
  """Prompt for rewriting a single component according to an instruction."""
  parts = [
    _ROLE_PREAMBLE,
    f"Revise one {request.component_type.value} component of a lesson.",
    f"## Current Component\n{json.dumps(request.current_payload, ensure_ascii=True, sort_keys=True)}",
    f"## Modification Request\n{request.instruction}",
  ]
  if request.lesson_context:
    parts.append(f"## Lesson Context\n{request.lesson_context}")
  parts.append(f"## Target Audience\nRole: {request.audience.role}\nExperience Level: {request.audience.experience_level}")
  parts.append("## Instructions\n- Apply the modification request and keep everything else consistent.\n- Return the complete revised component in the same structure.")
  return "\n\n".join(parts)
