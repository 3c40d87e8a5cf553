"""Model-facing interfaces the course generator talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0


@dataclass(frozen=True)
class StructuredModelResponse:
  """A decoded JSON object from one model call and what it cost."""

  content: dict[str, Any]
  usage: TokenUsage = field(default_factory=TokenUsage)

  @property
  def total_tokens(self) -> int:
    return self.usage.total_tokens


class AIModel(ABC):
  name: str

  @abstractmethod
  async def generate_structured(self, prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    """Run prompt and return output that matches the JSON schema."""


class Provider(ABC):
  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return a client for model, or for the provider default."""
