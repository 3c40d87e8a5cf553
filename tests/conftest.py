"""Shared fixtures: in-memory stores, static collaborators and a scripted provider."""

from __future__ import annotations

import os
from dataclasses import replace

# Keep app imports hermetic: no database, no worker loop.
os.environ.setdefault("COURSEGEN_STORAGE_BACKEND", "memory")
os.environ.setdefault("COURSEGEN_WORKER_ENABLED", "0")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.config import Settings, get_settings  # noqa: E402
from app.integrations.contracts import CallerIdentity, KnowledgeDigest, TargetAudience  # noqa: E402
from app.integrations.identity import TrustedHeaderIdentityResolver  # noqa: E402
from app.integrations.static import StaticAudienceLookup, StaticKnowledgeSourceLookup  # noqa: E402
from app.main import create_app  # noqa: E402
from app.services.runtime import EngineRuntime, assemble_runtime  # noqa: E402
from app.storage.memory_content_repo import InMemoryContentRepository  # noqa: E402
from app.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402
from tests.fakes import HEADERS, TENANT, USER, FakeClock, RecordingInvalidator, RecordingSink, ScriptedGenerator  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), storage_backend="memory", worker_enabled=False, claim_stale_seconds=900, default_max_retries=3)


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def jobs_repo(clock: FakeClock) -> InMemoryJobsRepository:
  return InMemoryJobsRepository(clock=clock)


@pytest.fixture
def content_repo() -> InMemoryContentRepository:
  return InMemoryContentRepository()


@pytest.fixture
def knowledge_lookup() -> StaticKnowledgeSourceLookup:
  lookup = StaticKnowledgeSourceLookup()
  lookup.add(TENANT, KnowledgeDigest(id="ks-1", name="Secure Coding Handbook", domain="security", summary="How to write secure code.", chunks=("chunk one", "chunk two", "chunk three"), keywords=("owasp", "input validation")))
  return lookup


@pytest.fixture
def audience_lookup() -> StaticAudienceLookup:
  lookup = StaticAudienceLookup()
  lookup.add(TENANT, TargetAudience(id="aud-1", role="Backend developer", experience_level="intermediate", learning_goals=("Ship safer code",), prerequisites=("HTTP basics",), challenges=("Time pressure",)))
  return lookup


@pytest.fixture
def generator() -> ScriptedGenerator:
  return ScriptedGenerator()


@pytest.fixture
def notifications() -> RecordingSink:
  return RecordingSink()


@pytest.fixture
def cache_invalidator() -> RecordingInvalidator:
  return RecordingInvalidator()


@pytest.fixture
def caller() -> CallerIdentity:
  return CallerIdentity(tenant_id=TENANT, user_id=USER)


@pytest.fixture
def runtime(
  settings: Settings,
  jobs_repo: InMemoryJobsRepository,
  content_repo: InMemoryContentRepository,
  knowledge_lookup: StaticKnowledgeSourceLookup,
  audience_lookup: StaticAudienceLookup,
  generator: ScriptedGenerator,
  notifications: RecordingSink,
  cache_invalidator: RecordingInvalidator,
  clock: FakeClock,
) -> EngineRuntime:
  return assemble_runtime(
    settings=settings,
    jobs_repo=jobs_repo,
    content_repo=content_repo,
    identity=TrustedHeaderIdentityResolver(),
    knowledge_lookup=knowledge_lookup,
    audience_lookup=audience_lookup,
    generator=generator,
    notifications=notifications,
    cache_invalidator=cache_invalidator,
    worker_id="worker-a",
    clock=clock,
  )


@pytest.fixture
async def async_client(runtime: EngineRuntime):
  app = create_app(runtime=runtime, start_worker=False)
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=HEADERS) as client:
    yield client
