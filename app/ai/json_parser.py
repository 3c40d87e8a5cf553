"""Tolerant decoding of model output that should have been a single JSON document."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_DANGLING_COMMA_RE = re.compile(r",(\s*[}\]])")
_decoder = json.JSONDecoder()


def strip_json_fences(raw: str) -> str:
  return _FENCE_RE.sub("", raw.strip())


def _decode_prefix(text: str) -> Any:
  """Decode the JSON value at the start of text and ignore whatever follows it."""
  value, _ = _decoder.raw_decode(text)
  return value


def parse_json_with_fallback(raw: str) -> Any:
  """Decode raw strictly, then retry from the first bracket with dangling commas removed.

  Raises the strict-parse JSONDecodeError when no recovery works.
  """
  try:
    return json.loads(raw)
  except json.JSONDecodeError as strict_error:
    text = strip_json_fences(raw)
    start = min((index for index in (text.find("{"), text.find("[")) if index >= 0), default=-1)
    if start < 0:
      raise

    body = text[start:]
    for candidate in (body, _DANGLING_COMMA_RE.sub(r"\1", body)):
      try:
        return _decode_prefix(candidate)
      except json.JSONDecodeError:
        continue
    raise strict_error from None
