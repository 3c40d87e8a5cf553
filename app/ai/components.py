"""Convert flat model components into stored component payloads."""

from __future__ import annotations

import html
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.ai.pipeline.contracts import FlatComponent
from app.core.errors import ProviderError
from app.storage.content_repo import ComponentDraft, ComponentType

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

QUESTION_TYPE_MULTIPLE_CHOICE = "multiple_choice"


def strip_html(raw: str) -> str:
  """Return the visible text of an HTML fragment."""
  if not raw:
    return ""
  no_tags = _TAG_RE.sub(" ", raw)
  return _WS_RE.sub(" ", html.unescape(no_tags)).strip()


def _quiz_payload(component: FlatComponent) -> dict[str, Any]:
  options = [{"id": option.id, "text": option.text} for option in component.quiz_options]
  if not 2 <= len(options) <= 4:
    raise ProviderError(f"Quiz component must have 2-4 options, got {len(options)}.")
  if component.quiz_correct_answer_id not in {option["id"] for option in options}:
    raise ProviderError("Quiz component correct answer does not match any option.")
  return {"question": component.quiz_question, "question_type": QUESTION_TYPE_MULTIPLE_CHOICE, "options": options, "correct_answer_id": component.quiz_correct_answer_id, "explanation": component.quiz_explanation}


def to_component_draft(component: FlatComponent) -> ComponentDraft:
  """Map one flat component onto its typed payload."""
  match component.component_type:
    case ComponentType.TEXT:
      payload: dict[str, Any] = {"html": component.text_html, "plaintext": strip_html(component.text_html)}
    case ComponentType.HEADING:
      payload = {"level": component.heading_level, "text": component.heading_text}
    case ComponentType.IMAGE:
      payload = {"image_description": component.image_description, "alt_text": component.image_alt_text, "caption": component.image_caption}
    case ComponentType.QUIZ:
      payload = _quiz_payload(component)
  return ComponentDraft(component_type=component.component_type, payload=payload)


def to_component_drafts(components: list[FlatComponent]) -> tuple[ComponentDraft, ...]:
  return tuple(to_component_draft(component) for component in components)


def normalize_regenerated_payload(component_type: ComponentType, payload: dict[str, Any]) -> dict[str, Any]:
  """Fill derived fields on a regenerated payload and reject a wrong shape."""
  match component_type:
    case ComponentType.TEXT:
      html_body = str(payload.get("html") or "")
      if not html_body:
        raise ProviderError("Regenerated text component is missing html.")
      return {"html": html_body, "plaintext": strip_html(html_body)}
    case ComponentType.HEADING:
      text = str(payload.get("text") or "")
      level = payload.get("level")
      if not text or not isinstance(level, int) or not 1 <= level <= 4:
        raise ProviderError("Regenerated heading component needs text and a level between 1 and 4.")
      return {"level": level, "text": text}
    case ComponentType.IMAGE:
      if not payload.get("image_description"):
        raise ProviderError("Regenerated image component is missing image_description.")
      return {"image_description": payload["image_description"], "alt_text": str(payload.get("alt_text") or ""), "caption": str(payload.get("caption") or "")}
    case ComponentType.QUIZ:
      try:
        flat = FlatComponent(
          component_type=ComponentType.QUIZ,
          quiz_question=str(payload.get("question") or ""),
          quiz_options=payload.get("options") or [],
          quiz_correct_answer_id=str(payload.get("correct_answer_id") or ""),
          quiz_explanation=str(payload.get("explanation") or ""),
        )
      except PydanticValidationError as exc:
        raise ProviderError(f"Regenerated quiz component is malformed: {exc}") from exc
      if not flat.quiz_question:
        raise ProviderError("Regenerated quiz component is missing a question.")
      return _quiz_payload(flat)
