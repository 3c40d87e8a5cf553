"""Course generation calls against Gemini's JSON response mode."""

from __future__ import annotations

import json
import logging
from typing import Any, Final

from google import genai

from app.ai.backoff import retry_with_backoff
from app.ai.json_parser import parse_json_with_fallback, strip_json_fences
from app.ai.providers.base import AIModel, Provider, StructuredModelResponse, TokenUsage

logger = logging.getLogger(__name__)


def _token_usage(metadata: Any) -> TokenUsage:
  if metadata is None:
    return TokenUsage()
  return TokenUsage(prompt_tokens=metadata.prompt_token_count or 0, completion_tokens=metadata.candidates_token_count or 0, total_tokens=metadata.total_token_count or 0)


class GeminiModel(AIModel):
  def __init__(self, name: str, api_key: str | None = None, *, client: Any | None = None) -> None:
    self.name = name
    if client is None:
      if not api_key:
        raise ValueError("GEMINI_API_KEY is required for the Gemini provider.")
      client = genai.Client(api_key=api_key)
    self._client = client

  async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    # The schema goes in as a plain dict; the SDK's typed Schema rejects some JSON Schema keywords.
    config = {"response_mime_type": "application/json", "response_schema": schema}
    try:
      response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)
    except Exception as exc:  # noqa: BLE001
      raise RuntimeError(f"Gemini request failed: {exc}") from exc

    usage = _token_usage(response.usage_metadata)
    logger.debug("Gemini raw response model=%s total_tokens=%s:\n%s", self.name, usage.total_tokens, response.text)
    if not response.text:
      raise RuntimeError("Gemini returned an empty response.")

    try:
      content = parse_json_with_fallback(strip_json_fences(response.text))
    except json.JSONDecodeError as exc:
      raise RuntimeError(f"Gemini returned invalid JSON: {exc}") from exc
    if not isinstance(content, dict):
      raise RuntimeError(f"Gemini returned invalid JSON: expected an object, got {type(content).__name__}.")
    return StructuredModelResponse(content=content, usage=usage)


class GeminiProvider(Provider):
  DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  SUPPORTED_MODELS: Final[frozenset[str]] = frozenset({"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash"})

  def __init__(self, api_key: str | None = None) -> None:
    self.name = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    model_name = model or self.DEFAULT_MODEL
    if model_name not in self.SUPPORTED_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'; expected one of {sorted(self.SUPPORTED_MODELS)}.")
    return GeminiModel(model_name, api_key=self._api_key)
