"""Response schemas passed to the model for structured output.

Kept as plain dicts in the OpenAPI subset Gemini accepts; the pydantic models in
``app.ai.pipeline.contracts`` validate what comes back.
"""

from __future__ import annotations

from typing import Any

from app.storage.content_repo import ComponentType

JsonSchema = dict[str, Any]

_STRING_LIST: JsonSchema = {"type": "array", "items": {"type": "string"}}

SECTION_PLAN_SCHEMA: JsonSchema = {
  "type": "object",
  "properties": {
    "sections": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {"title": {"type": "string"}, "description": {"type": "string"}, "lesson_titles": _STRING_LIST},
        "required": ["title", "description", "lesson_titles"],
      },
    }
  },
  "required": ["sections"],
}

SECTION_LESSONS_SCHEMA: JsonSchema = {
  "type": "object",
  "properties": {
    "lessons": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {"title": {"type": "string"}, "description": {"type": "string"}, "estimated_duration_minutes": {"type": "integer"}, "learning_objectives": _STRING_LIST},
        "required": ["title", "description", "estimated_duration_minutes", "learning_objectives"],
      },
    }
  },
  "required": ["lessons"],
}

_QUIZ_OPTIONS: JsonSchema = {
  "type": "array",
  "minItems": 2,
  "maxItems": 4,
  "items": {"type": "object", "properties": {"id": {"type": "string"}, "text": {"type": "string"}}, "required": ["id", "text"]},
}

LESSON_CONTENT_SCHEMA: JsonSchema = {
  "type": "object",
  "properties": {
    "components": {
      "type": "array",
      "items": {
        "type": "object",
        "properties": {
          "component_type": {"type": "string", "enum": [member.value for member in ComponentType]},
          "text_html": {"type": "string"},
          "heading_level": {"type": "integer", "minimum": 1, "maximum": 4},
          "heading_text": {"type": "string"},
          "image_description": {"type": "string"},
          "image_alt_text": {"type": "string"},
          "image_caption": {"type": "string"},
          "quiz_question": {"type": "string"},
          "quiz_options": _QUIZ_OPTIONS,
          "quiz_correct_answer_id": {"type": "string"},
          "quiz_explanation": {"type": "string"},
        },
        "required": ["component_type"],
      },
    },
    "segue_text": {"type": "string"},
  },
  "required": ["components", "segue_text"],
}

COMPONENT_SCHEMAS: dict[ComponentType, JsonSchema] = {
  ComponentType.TEXT: {"type": "object", "properties": {"html": {"type": "string"}, "plaintext": {"type": "string"}}, "required": ["html", "plaintext"]},
  ComponentType.HEADING: {"type": "object", "properties": {"level": {"type": "integer", "minimum": 1, "maximum": 4}, "text": {"type": "string"}}, "required": ["level", "text"]},
  ComponentType.IMAGE: {"type": "object", "properties": {"image_description": {"type": "string"}, "alt_text": {"type": "string"}, "caption": {"type": "string"}}, "required": ["image_description", "alt_text"]},
  ComponentType.QUIZ: {
    "type": "object",
    "properties": {
      "question": {"type": "string"},
      "question_type": {"type": "string", "enum": ["multiple_choice"]},
      "options": _QUIZ_OPTIONS,
      "correct_answer_id": {"type": "string"},
      "explanation": {"type": "string"},
    },
    "required": ["question", "question_type", "options", "correct_answer_id"],
  },
}


def component_schema(component_type: ComponentType) -> JsonSchema:
  """Return the payload schema used when regenerating one component."""
  return COMPONENT_SCHEMAS[component_type]
