"""Process-wide wiring of stores, collaborators, the service and the worker."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from app.ai.generator import CourseGenerator
from app.ai.orchestrator import CourseGenerationOrchestrator
from app.ai.router import build_course_generator
from app.config import Settings
from app.integrations.contracts import AudienceLookup, CacheInvalidator, IdentityResolver, KnowledgeSourceLookup
from app.integrations.factory import build_audience_lookup, build_cache_invalidator, build_identity_resolver, build_knowledge_lookup
from app.jobs.dispatch import build_default_registry
from app.jobs.retry import RetryPolicy
from app.jobs.worker import JobProcessor, JobWorker
from app.notifications.contracts import NotificationSink
from app.notifications.factory import build_notification_sink
from app.services.jobs import GenerationService
from app.storage.content_repo import ContentRepository
from app.storage.factory import _get_content_repo, _get_jobs_repo
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import generate_worker_id


@dataclass(frozen=True)
class EngineRuntime:
  identity: IdentityResolver
  jobs_repo: JobsRepository
  content_repo: ContentRepository
  service: GenerationService
  worker: JobWorker


def assemble_runtime(
  *,
  settings: Settings,
  jobs_repo: JobsRepository,
  content_repo: ContentRepository,
  identity: IdentityResolver,
  knowledge_lookup: KnowledgeSourceLookup,
  audience_lookup: AudienceLookup,
  generator: CourseGenerator,
  notifications: NotificationSink,
  cache_invalidator: CacheInvalidator,
  worker_id: str | None = None,
  clock: Callable[[], datetime] | None = None,
) -> EngineRuntime:
  """Wire explicit collaborators together; tests pass in-memory ones."""
  retry_policy = RetryPolicy(stale_seconds=settings.claim_stale_seconds)
  worker_id = worker_id or generate_worker_id()
  orchestrator = CourseGenerationOrchestrator(content_repo=content_repo, knowledge_lookup=knowledge_lookup, audience_lookup=audience_lookup, generator=generator)
  processor = JobProcessor(jobs_repo=jobs_repo, registry=build_default_registry(orchestrator), notifications=notifications, cache_invalidator=cache_invalidator, worker_id=worker_id)
  worker = JobWorker(jobs_repo=jobs_repo, processor=processor, worker_id=worker_id, retry_policy=retry_policy, poll_seconds=settings.worker_poll_seconds, clock=clock)
  service = GenerationService(
    jobs_repo=jobs_repo,
    content_repo=content_repo,
    audience_lookup=audience_lookup,
    generator=generator,
    cache_invalidator=cache_invalidator,
    retry_policy=retry_policy,
    default_max_retries=settings.default_max_retries,
  )
  return EngineRuntime(identity=identity, jobs_repo=jobs_repo, content_repo=content_repo, service=service, worker=worker)


def build_runtime(settings: Settings) -> EngineRuntime:
  """Build the runtime from environment configuration."""
  return assemble_runtime(
    settings=settings,
    jobs_repo=_get_jobs_repo(settings),
    content_repo=_get_content_repo(settings),
    identity=build_identity_resolver(settings),
    knowledge_lookup=build_knowledge_lookup(settings),
    audience_lookup=build_audience_lookup(settings),
    generator=build_course_generator(settings),
    notifications=build_notification_sink(settings),
    cache_invalidator=build_cache_invalidator(settings),
  )
