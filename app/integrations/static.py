"""In-process collaborators for local development and tests."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from app.integrations.contracts import AudienceLookup, CacheInvalidator, KnowledgeDigest, KnowledgeSourceLookup, TargetAudience

logger = logging.getLogger(__name__)


class StaticKnowledgeSourceLookup(KnowledgeSourceLookup):
  """Serve digests from a fixed per-tenant catalog."""

  def __init__(self, catalog: dict[str, Iterable[KnowledgeDigest]] | None = None) -> None:
    self._catalog = {tenant_id: {digest.id: digest for digest in digests} for tenant_id, digests in (catalog or {}).items()}

  def add(self, tenant_id: str, digest: KnowledgeDigest) -> None:
    self._catalog.setdefault(tenant_id, {})[digest.id] = digest

  async def get_many(self, tenant_id: str, source_ids: Sequence[str]) -> list[KnowledgeDigest]:
    tenant_catalog = self._catalog.get(tenant_id, {})
    return [tenant_catalog[source_id] for source_id in source_ids if source_id in tenant_catalog]


class StaticAudienceLookup(AudienceLookup):
  """Serve audiences from a fixed per-tenant catalog."""

  def __init__(self, catalog: dict[str, Iterable[TargetAudience]] | None = None) -> None:
    self._catalog = {tenant_id: {audience.id: audience for audience in audiences} for tenant_id, audiences in (catalog or {}).items()}

  def add(self, tenant_id: str, audience: TargetAudience) -> None:
    self._catalog.setdefault(tenant_id, {})[audience.id] = audience

  async def get_many(self, tenant_id: str, audience_ids: Sequence[str]) -> list[TargetAudience]:
    tenant_catalog = self._catalog.get(tenant_id, {})
    return [tenant_catalog[audience_id] for audience_id in audience_ids if audience_id in tenant_catalog]


class NullCacheInvalidator(CacheInvalidator):
  """No-op invalidator used when no cache is configured."""

  async def invalidate_course(self, tenant_id: str, course_id: str) -> None:
    logger.debug("Cache invalidation disabled; skipping tenant_id=%s course_id=%s", tenant_id, course_id)
