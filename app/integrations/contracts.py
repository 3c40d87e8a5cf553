"""Contracts for the external collaborators the engine consumes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class CallerIdentity:
  """Tenant and user resolved from a trusted caller identity."""

  tenant_id: str
  user_id: str


@dataclass(frozen=True)
class KnowledgeDigest:
  """Bounded, pre-processed excerpt of one knowledge source."""

  id: str
  name: str
  domain: str
  summary: str = ""
  chunks: tuple[str, ...] = field(default_factory=tuple)
  keywords: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TargetAudience:
  id: str
  role: str
  experience_level: str
  learning_goals: tuple[str, ...] = field(default_factory=tuple)
  prerequisites: tuple[str, ...] = field(default_factory=tuple)
  challenges: tuple[str, ...] = field(default_factory=tuple)
  motivations: tuple[str, ...] = field(default_factory=tuple)
  industry_context: str = ""
  typical_background: str = ""


class CollaboratorError(Exception):
  """Raised when an external collaborator cannot be reached or answers with an error."""


class IdentityError(CollaboratorError):
  """Raised when the caller identity cannot be resolved."""


class IdentityResolver(Protocol):
  def resolve(self, headers: Mapping[str, str]) -> CallerIdentity:
    """Resolve the caller's tenant and user from request headers."""


class KnowledgeSourceLookup(Protocol):
  async def get_many(self, tenant_id: str, source_ids: Sequence[str]) -> list[KnowledgeDigest]:
    """Return digests for the ids that exist, in request order; unknown ids are omitted."""


class AudienceLookup(Protocol):
  async def get_many(self, tenant_id: str, audience_ids: Sequence[str]) -> list[TargetAudience]:
    """Return audiences for the ids that exist, in request order; unknown ids are omitted."""


class CacheInvalidator(Protocol):
  async def invalidate_course(self, tenant_id: str, course_id: str) -> None:
    """Drop any cached read models for a course."""
