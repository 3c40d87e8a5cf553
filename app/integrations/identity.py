"""Caller identity resolution from gateway headers."""

from __future__ import annotations

from collections.abc import Mapping

from app.integrations.contracts import CallerIdentity, IdentityError, IdentityResolver

TENANT_HEADER = "x-tenant-id"
USER_HEADER = "x-user-id"


class TrustedHeaderIdentityResolver(IdentityResolver):
  """Read tenant and user ids stamped by the upstream gateway after authentication."""

  def __init__(self, *, tenant_header: str = TENANT_HEADER, user_header: str = USER_HEADER) -> None:
    self._tenant_header = tenant_header.lower()
    self._user_header = user_header.lower()

  def resolve(self, headers: Mapping[str, str]) -> CallerIdentity:
    normalized = {key.lower(): value for key, value in headers.items()}
    tenant_id = (normalized.get(self._tenant_header) or "").strip()
    user_id = (normalized.get(self._user_header) or "").strip()
    if not tenant_id or not user_id:
      raise IdentityError("Caller identity headers are missing.")
    return CallerIdentity(tenant_id=tenant_id, user_id=user_id)
