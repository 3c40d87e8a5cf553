from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.ai.backoff import is_rate_limit_error, retry_with_backoff
from app.ai.json_parser import parse_json_with_fallback
from app.ai.providers.gemini import GeminiModel, GeminiProvider


def _client(*responses) -> MagicMock:
  client = MagicMock()
  client.aio.models.generate_content = AsyncMock(side_effect=list(responses))
  return client


def _response(text: str, total_tokens: int = 30) -> SimpleNamespace:
  usage = SimpleNamespace(prompt_token_count=10, candidates_token_count=20, total_token_count=total_tokens)
  return SimpleNamespace(text=text, usage_metadata=usage)


@pytest.mark.anyio
async def test_generate_structured_parses_json_and_usage() -> None:
  client = _client(_response('```json\n{"sections": [1, 2,]}\n```'))
  model = GeminiModel("gemini-2.5-flash", client=client)

  result = await model.generate_structured("prompt", {"type": "object"})
  assert result.content == {"sections": [1, 2]}
  assert result.total_tokens == 30
  kwargs = client.aio.models.generate_content.await_args.kwargs
  assert kwargs["model"] == "gemini-2.5-flash"
  assert kwargs["config"]["response_mime_type"] == "application/json"


@pytest.mark.anyio
async def test_generate_structured_rejects_non_object_output() -> None:
  model = GeminiModel("gemini-2.5-flash", client=_client(_response("[1, 2]")))
  with pytest.raises(RuntimeError, match="expected an object"):
    await model.generate_structured("prompt", {})


@pytest.mark.anyio
async def test_generate_structured_wraps_sdk_errors() -> None:
  model = GeminiModel("gemini-2.5-flash", client=_client(ValueError("bad request")))
  with pytest.raises(RuntimeError, match="Gemini request failed"):
    await model.generate_structured("prompt", {})


@pytest.mark.anyio
async def test_rate_limited_call_is_retried_with_backoff() -> None:
  func = AsyncMock(side_effect=[RuntimeError("429 Too Many Requests"), RuntimeError("RESOURCE_EXHAUSTED"), "ok"])
  with patch("app.ai.backoff.asyncio.sleep", new=AsyncMock()) as sleep:
    assert await retry_with_backoff(func, delays=(0.1, 0.2)) == "ok"
  assert func.await_count == 3
  assert sleep.await_count == 2


@pytest.mark.anyio
async def test_other_errors_are_not_retried() -> None:
  func = AsyncMock(side_effect=RuntimeError("invalid schema"))
  with pytest.raises(RuntimeError, match="invalid schema"):
    await retry_with_backoff(func, delays=(0.1,))
  assert func.await_count == 1


def test_rate_limit_detection() -> None:
  assert is_rate_limit_error(RuntimeError("Quota Exceeded for project"))
  assert not is_rate_limit_error(RuntimeError("500 Internal"))


def test_json_fallback_extracts_object_from_prose() -> None:
  assert parse_json_with_fallback('Here you go: {"a": "}", "b": [1,]} thanks') == {"a": "}", "b": [1]}


def test_provider_rejects_unknown_model() -> None:
  with pytest.raises(ValueError, match="Unsupported Gemini model"):
    GeminiProvider(api_key="key").get_model("gpt-4")
