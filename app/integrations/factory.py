"""Factory helpers for external collaborators."""

from __future__ import annotations

import logging

from app.config import Settings
from app.integrations.contracts import AudienceLookup, CacheInvalidator, IdentityResolver, KnowledgeSourceLookup
from app.integrations.http_clients import HttpAudienceLookup, HttpCacheInvalidator, HttpKnowledgeSourceLookup
from app.integrations.identity import TrustedHeaderIdentityResolver
from app.integrations.static import NullCacheInvalidator, StaticAudienceLookup, StaticKnowledgeSourceLookup

logger = logging.getLogger(__name__)


def build_identity_resolver(settings: Settings) -> IdentityResolver:
  _ = settings
  return TrustedHeaderIdentityResolver()


def build_knowledge_lookup(settings: Settings) -> KnowledgeSourceLookup:
  """Use the knowledge service when configured, otherwise an empty local catalog."""
  if settings.knowledge_service_url:
    return HttpKnowledgeSourceLookup(base_url=settings.knowledge_service_url, timeout_seconds=settings.collaborator_timeout_seconds)
  logger.warning("COURSEGEN_KNOWLEDGE_SERVICE_URL is unset; knowledge sources resolve from an empty local catalog.")
  return StaticKnowledgeSourceLookup()


def build_audience_lookup(settings: Settings) -> AudienceLookup:
  """Use the audience service when configured, otherwise an empty local catalog."""
  if settings.audience_service_url:
    return HttpAudienceLookup(base_url=settings.audience_service_url, timeout_seconds=settings.collaborator_timeout_seconds)
  logger.warning("COURSEGEN_AUDIENCE_SERVICE_URL is unset; target audiences resolve from an empty local catalog.")
  return StaticAudienceLookup()


def build_cache_invalidator(settings: Settings) -> CacheInvalidator:
  if settings.cache_invalidation_url:
    return HttpCacheInvalidator(base_url=settings.cache_invalidation_url, timeout_seconds=settings.collaborator_timeout_seconds)
  return NullCacheInvalidator()
