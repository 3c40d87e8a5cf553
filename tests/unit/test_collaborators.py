from __future__ import annotations

import json

import httpx
import pytest

from app.integrations.contracts import CollaboratorError, IdentityError
from app.integrations.http_clients import HttpAudienceLookup, HttpCacheInvalidator, HttpKnowledgeSourceLookup
from app.integrations.identity import TrustedHeaderIdentityResolver
from app.notifications.contracts import JobNotification, NotificationProviderError
from app.notifications.webhook_sender import WebhookConfig, WebhookNotificationSink

NOTIFICATION = JobNotification(tenant_id="tenant-1", user_id="user-1", job_id="job-1", job_type="outline", status="completed", progress_percent=100, course_id="course-1")


@pytest.mark.anyio
async def test_webhook_posts_terminal_event() -> None:
  seen: list[dict] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(json.loads(request.content))
    return httpx.Response(204)

  sink = WebhookNotificationSink(config=WebhookConfig(url="https://hooks.test/jobs", timeout_seconds=1), transport=httpx.MockTransport(handler))
  await sink.notify_job_terminal(NOTIFICATION)
  assert seen[0]["event"] == "job.terminal"
  assert seen[0]["job_id"] == "job-1"
  assert seen[0]["status"] == "completed"


@pytest.mark.anyio
async def test_webhook_error_status_raises_provider_error() -> None:
  sink = WebhookNotificationSink(config=WebhookConfig(url="https://hooks.test/jobs", timeout_seconds=1), transport=httpx.MockTransport(lambda request: httpx.Response(503)))
  with pytest.raises(NotificationProviderError, match="503"):
    await sink.notify_job_terminal(NOTIFICATION)


@pytest.mark.anyio
async def test_knowledge_lookup_keeps_request_order_and_drops_unknown_ids() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    assert request.url.path == "/tenants/tenant-1/knowledge-sources"
    assert request.url.params["ids"] == "ks-2,missing,ks-1"
    items = [{"id": "ks-1", "name": "One", "domain": "d", "chunks": ["a"]}, {"id": "ks-2", "name": "Two", "domain": "d", "keywords": ["k"]}]
    return httpx.Response(200, json={"items": items})

  lookup = HttpKnowledgeSourceLookup(base_url="https://knowledge.test/", timeout_seconds=1, transport=httpx.MockTransport(handler))
  digests = await lookup.get_many("tenant-1", ["ks-2", "missing", "ks-1"])
  assert [digest.id for digest in digests] == ["ks-2", "ks-1"]
  assert digests[1].chunks == ("a",)
  assert digests[0].keywords == ("k",)


@pytest.mark.anyio
async def test_audience_lookup_maps_fields() -> None:
  body = {"items": [{"id": "aud-1", "role": "Engineer", "experience_level": "senior", "learning_goals": ["Lead reviews"], "industry_context": "fintech"}]}
  lookup = HttpAudienceLookup(base_url="https://audience.test", timeout_seconds=1, transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))
  (audience,) = await lookup.get_many("tenant-1", ["aud-1"])
  assert audience.role == "Engineer"
  assert audience.learning_goals == ("Lead reviews",)
  assert audience.industry_context == "fintech"


@pytest.mark.parametrize(
  "body",
  [
    {"text": "<html>maintenance</html>"},
    {"json": {"items": [{"name": "no id"}]}},
    {"json": ["ks-1"]},
    {"json": {"items": ["ks-1"]}},
  ],
)
@pytest.mark.anyio
async def test_malformed_lookup_body_raises_collaborator_error(body: dict) -> None:
  transport = httpx.MockTransport(lambda request: httpx.Response(200, **body))
  knowledge = HttpKnowledgeSourceLookup(base_url="https://knowledge.test", timeout_seconds=1, transport=transport)
  with pytest.raises(CollaboratorError, match="malformed body"):
    await knowledge.get_many("tenant-1", ["ks-1"])

  audience = HttpAudienceLookup(base_url="https://audience.test", timeout_seconds=1, transport=transport)
  with pytest.raises(CollaboratorError, match="malformed body"):
    await audience.get_many("tenant-1", ["aud-1"])


@pytest.mark.anyio
async def test_collaborator_failures_raise_collaborator_error() -> None:
  lookup = HttpCacheInvalidator(base_url="https://cache.test", timeout_seconds=1, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
  with pytest.raises(CollaboratorError):
    await lookup.invalidate_course("tenant-1", "course-1")


@pytest.mark.anyio
async def test_cache_invalidation_targets_course_pattern() -> None:
  seen: list[dict] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(json.loads(request.content))
    return httpx.Response(200)

  invalidator = HttpCacheInvalidator(base_url="https://cache.test", timeout_seconds=1, transport=httpx.MockTransport(handler))
  await invalidator.invalidate_course("tenant-1", "course-1")
  assert seen == [{"tenant_id": "tenant-1", "pattern": "course:course-1:*"}]


def test_identity_resolver_reads_trusted_headers() -> None:
  identity = TrustedHeaderIdentityResolver().resolve({"X-Tenant-Id": " tenant-1 ", "X-User-Id": "user-1"})
  assert (identity.tenant_id, identity.user_id) == ("tenant-1", "user-1")
  with pytest.raises(IdentityError):
    TrustedHeaderIdentityResolver().resolve({"X-Tenant-Id": "tenant-1"})
