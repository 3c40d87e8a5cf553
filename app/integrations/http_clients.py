"""httpx clients for knowledge, audience and cache collaborators."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from app.integrations.contracts import AudienceLookup, CacheInvalidator, CollaboratorError, KnowledgeDigest, KnowledgeSourceLookup, TargetAudience

logger = logging.getLogger(__name__)


def _as_tuple(value: Any) -> tuple[str, ...]:
  if not value:
    return ()
  return tuple(str(item) for item in value)


class _CollaboratorClient:
  """Shared request plumbing for JSON collaborators."""

  def __init__(self, *, base_url: str, timeout_seconds: float, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._timeout_seconds = timeout_seconds
    self._transport = transport

  def _build_client(self) -> httpx.AsyncClient:
    # Never trust environment proxy variables for internal service calls.
    return httpx.AsyncClient(base_url=self._base_url, transport=self._transport, timeout=self._timeout_seconds, trust_env=False)

  async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
    try:
      async with self._build_client() as client:
        response = await client.request(method, path, **kwargs)
        response.raise_for_status()
        return response
    except httpx.HTTPStatusError as exc:
      logger.error("Collaborator %s %s returned %s", method, path, exc.response.status_code)
      raise CollaboratorError(f"{method} {path} returned {exc.response.status_code}") from exc
    except httpx.RequestError as exc:
      logger.error("Collaborator %s %s failed: %s", method, path, exc)
      raise CollaboratorError(f"{method} {path} failed: {exc}") from exc

  def _items_by_id(self, response: httpx.Response) -> dict[str, dict[str, Any]]:
    """Index the `items` array of a lookup response by id; a body of any other shape is a collaborator fault."""
    try:
      payload = response.json()
      items = {str(item["id"]): item for item in payload.get("items", [])}
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
      logger.error("Collaborator %s returned a malformed body: %s", response.request.url.path, exc)
      raise CollaboratorError(f"{response.request.url.path} returned a malformed body") from exc
    return items


class HttpKnowledgeSourceLookup(_CollaboratorClient, KnowledgeSourceLookup):
  async def get_many(self, tenant_id: str, source_ids: Sequence[str]) -> list[KnowledgeDigest]:
    if not source_ids:
      return []
    response = await self._request("GET", f"/tenants/{tenant_id}/knowledge-sources", params={"ids": ",".join(source_ids)})
    items = self._items_by_id(response)
    digests: list[KnowledgeDigest] = []
    for source_id in source_ids:
      item = items.get(source_id)
      if item is None:
        continue
      digests.append(KnowledgeDigest(id=source_id, name=str(item.get("name", "")), domain=str(item.get("domain", "")), summary=str(item.get("summary") or ""), chunks=_as_tuple(item.get("chunks")), keywords=_as_tuple(item.get("keywords"))))
    return digests


class HttpAudienceLookup(_CollaboratorClient, AudienceLookup):
  async def get_many(self, tenant_id: str, audience_ids: Sequence[str]) -> list[TargetAudience]:
    if not audience_ids:
      return []
    response = await self._request("GET", f"/tenants/{tenant_id}/target-audiences", params={"ids": ",".join(audience_ids)})
    items = self._items_by_id(response)
    audiences: list[TargetAudience] = []
    for audience_id in audience_ids:
      item = items.get(audience_id)
      if item is None:
        continue
      audiences.append(
        TargetAudience(
          id=audience_id,
          role=str(item.get("role", "")),
          experience_level=str(item.get("experience_level", "")),
          learning_goals=_as_tuple(item.get("learning_goals")),
          prerequisites=_as_tuple(item.get("prerequisites")),
          challenges=_as_tuple(item.get("challenges")),
          motivations=_as_tuple(item.get("motivations")),
          industry_context=str(item.get("industry_context") or ""),
          typical_background=str(item.get("typical_background") or ""),
        )
      )
    return audiences


class HttpCacheInvalidator(_CollaboratorClient, CacheInvalidator):
  async def invalidate_course(self, tenant_id: str, course_id: str) -> None:
    await self._request("POST", "/invalidate", json={"tenant_id": tenant_id, "pattern": f"course:{course_id}:*"})
