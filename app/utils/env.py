"""Minimal .env loader for local development."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_OVERRIDE = "COURSEGEN_ENV_FILE"


def default_env_path() -> Path:
  """Return the .env path, preferring an explicit override."""

  override = os.getenv(ENV_FILE_OVERRIDE)
  if override:
    return Path(override)
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Load KEY=value lines into os.environ and return what was applied."""

  applied: dict[str, str] = {}
  if not path.is_file():
    return applied

  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    if not override and key in os.environ:
      continue
    os.environ[key] = _unquote(value.strip())
    applied[key] = os.environ[key]

  return applied
