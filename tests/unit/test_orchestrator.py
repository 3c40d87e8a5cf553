from __future__ import annotations

import pytest

from app.ai.pipeline.contracts import OutlineRequest, PlannedSectionRequest, SectionExpansionResult
from app.config import Settings
from app.integrations.contracts import CallerIdentity
from app.integrations.identity import TrustedHeaderIdentityResolver
from app.integrations.static import StaticAudienceLookup, StaticKnowledgeSourceLookup
from app.jobs.models import JobStatus, SubState
from app.services.runtime import EngineRuntime, assemble_runtime
from app.storage.content_repo import ApprovalStatus
from app.storage.memory_content_repo import InMemoryContentRepository
from app.storage.memory_jobs_repo import InMemoryJobsRepository
from tests.fakes import FakeClock, RecordingInvalidator, RecordingSink, ScriptedGenerator


async def _submit_outline(runtime: EngineRuntime, caller: CallerIdentity, **overrides):
  values = {"course_id": "course-1", "course_title": "Secure Coding", "knowledge_source_ids": ["ks-1"], "target_audience_ids": ["aud-1"], "desired_outcome": "Fewer vulnerabilities"}
  values.update(overrides)
  return await runtime.service.submit_outline_job(caller, **values)


@pytest.mark.anyio
async def test_outline_job_stores_pending_outline_and_result(runtime: EngineRuntime, caller: CallerIdentity, content_repo: InMemoryContentRepository, generator: ScriptedGenerator) -> None:
  job = await _submit_outline(runtime, caller)
  final = await runtime.worker.run_once()

  assert final is not None and final.id == job.id
  assert final.status == JobStatus.COMPLETED
  assert final.progress_percent == 100
  assert final.sub_state is None
  assert final.tokens_used == 300

  tree = await content_repo.get_latest_outline(caller.tenant_id, "course-1")
  assert tree is not None
  assert tree.outline.approval_status == ApprovalStatus.PENDING_REVIEW
  assert tree.outline.job_id == job.id
  assert final.result_json == {"outline_id": tree.outline.id, "version": 1, "section_ids": [item.section.id for item in tree.sections], "lesson_count": 3, "skipped_sections": []}
  assert [lesson.position for lesson in tree.sections[0].lessons] == [1, 2]

  request = generator.outline_requests[0]
  assert request.audience.id == "aud-1"
  assert [digest.id for digest in request.knowledge] == ["ks-1"]


@pytest.mark.anyio
async def test_partial_outline_completes_and_reports_skipped_sections(runtime: EngineRuntime, caller: CallerIdentity, generator: ScriptedGenerator) -> None:
  generator.failing_sections = {"Practice"}
  await _submit_outline(runtime, caller)
  final = await runtime.worker.run_once()

  assert final is not None and final.status == JobStatus.COMPLETED
  assert "Practice" in (final.progress_message or "")
  assert final.result_json is not None
  assert final.result_json["skipped_sections"] == ["Practice"]
  assert final.result_json["lesson_count"] == 2


@pytest.mark.anyio
async def test_outline_job_fails_without_resolvable_knowledge(runtime: EngineRuntime, caller: CallerIdentity, content_repo: InMemoryContentRepository, generator: ScriptedGenerator) -> None:
  await _submit_outline(runtime, caller, knowledge_source_ids=["missing"])
  final = await runtime.worker.run_once()

  assert final is not None and final.status == JobStatus.FAILED
  assert final.error_code == "VALIDATION"
  assert final.sub_state == SubState.GATHERING_KNOWLEDGE
  assert generator.calls == []
  assert await content_repo.get_latest_outline(caller.tenant_id, "course-1") is None


@pytest.mark.anyio
async def test_outline_job_fails_without_resolvable_audience(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  await _submit_outline(runtime, caller, target_audience_ids=["nobody"])
  final = await runtime.worker.run_once()
  assert final is not None and final.status == JobStatus.FAILED
  assert final.error_code == "VALIDATION"
  assert final.sub_state == SubState.ANALYZING_AUDIENCE


@pytest.mark.anyio
async def test_provider_failure_keeps_last_checkpoint_and_stores_nothing(runtime: EngineRuntime, caller: CallerIdentity, content_repo: InMemoryContentRepository, generator: ScriptedGenerator) -> None:
  generator.fail_plan = True
  await _submit_outline(runtime, caller)
  final = await runtime.worker.run_once()

  assert final is not None and final.status == JobStatus.FAILED
  assert final.error_code == "PROVIDER_ERROR"
  assert final.sub_state == SubState.GENERATING
  assert final.progress_percent == 40
  assert await content_repo.get_latest_outline(caller.tenant_id, "course-1") is None


class _CancellingGenerator(ScriptedGenerator):
  """Cancel the job from outside while the first section is being expanded."""

  def __init__(self, jobs_repo: InMemoryJobsRepository) -> None:
    super().__init__()
    self.jobs_repo = jobs_repo
    self.job_ref: tuple[str, str] | None = None

  async def expand_section(self, request: OutlineRequest, section: PlannedSectionRequest) -> SectionExpansionResult:
    if self.job_ref is not None:
      await self.jobs_repo.cancel(*self.job_ref)
    return await super().expand_section(request, section)


@pytest.mark.anyio
async def test_cancel_during_generation_stops_at_next_checkpoint(
  jobs_repo: InMemoryJobsRepository,
  content_repo: InMemoryContentRepository,
  caller: CallerIdentity,
  settings: Settings,
  knowledge_lookup: StaticKnowledgeSourceLookup,
  audience_lookup: StaticAudienceLookup,
  notifications: RecordingSink,
  cache_invalidator: RecordingInvalidator,
  clock: FakeClock,
) -> None:
  generator = _CancellingGenerator(jobs_repo)
  runtime = assemble_runtime(
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
  job = await _submit_outline(runtime, caller)
  generator.job_ref = (job.tenant_id, job.id)

  final = await runtime.worker.run_once()
  assert final is not None and final.status == JobStatus.CANCELLED
  assert await content_repo.get_latest_outline(caller.tenant_id, "course-1") is None
  assert notifications.notifications == []
  assert cache_invalidator.invalidated == []


@pytest.mark.anyio
async def test_cancel_while_storing_is_refused_and_job_completes(runtime: EngineRuntime, caller: CallerIdentity, jobs_repo: InMemoryJobsRepository, content_repo: InMemoryContentRepository, cache_invalidator: RecordingInvalidator) -> None:
  job = await _submit_outline(runtime, caller)
  save_outline = content_repo.save_outline
  cancel_attempts = []

  async def save_then_cancel(tenant_id, **kwargs):
    tree = await save_outline(tenant_id, **kwargs)
    cancel_attempts.append(await jobs_repo.cancel(tenant_id, job.id))
    return tree

  content_repo.save_outline = save_then_cancel
  final = await runtime.worker.run_once()

  assert cancel_attempts == [None]
  assert final is not None and final.status == JobStatus.COMPLETED
  tree = await content_repo.get_latest_outline(caller.tenant_id, "course-1")
  assert tree is not None
  assert final.result_json is not None and final.result_json["outline_id"] == tree.outline.id
  assert cache_invalidator.invalidated == [(caller.tenant_id, "course-1")]


async def _approved_outline(runtime: EngineRuntime, caller: CallerIdentity):
  await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  tree = await runtime.service.get_outline(caller.tenant_id, "course-1")
  await runtime.service.approve_outline(caller, tree.outline.id)
  return tree


@pytest.mark.anyio
async def test_lesson_job_uses_neighbouring_lessons_and_stores_components(runtime: EngineRuntime, caller: CallerIdentity, generator: ScriptedGenerator, content_repo: InMemoryContentRepository) -> None:
  tree = await _approved_outline(runtime, caller)
  basics = tree.sections[0].lessons[1]

  job = await runtime.service.submit_lesson_job(caller, outline_lesson_id=basics.id)
  final = await runtime.worker.run_once()

  assert final is not None and final.id == job.id
  assert final.status == JobStatus.COMPLETED
  request = generator.lesson_requests[0]
  assert (request.previous_lesson_title, request.lesson_title, request.next_lesson_title) == ("Intro", "Basics", "Drills")
  assert request.is_last_in_section is True
  assert request.is_last_in_course is False
  assert request.section_title == "Foundations"

  assert final.result_json is not None
  lesson = await content_repo.get_generated_lesson(caller.tenant_id, final.result_json["generated_lesson_id"])
  assert lesson is not None
  assert [component.position for component in lesson.components] == [1, 2, 3]
  assert [component.id for component in lesson.components] == final.result_json["component_ids"]
  assert lesson.lesson.segue_text == "Next up after Basics"


@pytest.mark.anyio
async def test_lesson_job_fails_when_outline_approval_was_revoked(runtime: EngineRuntime, caller: CallerIdentity, content_repo: InMemoryContentRepository, generator: ScriptedGenerator) -> None:
  tree = await _approved_outline(runtime, caller)
  await runtime.service.submit_lesson_job(caller, outline_lesson_id=tree.sections[1].lessons[0].id)
  await content_repo.set_outline_approval(caller.tenant_id, tree.outline.id, status=ApprovalStatus.REJECTED, actor_user_id="reviewer", reason="Changed our mind")

  final = await runtime.worker.run_once()
  assert final is not None and final.status == JobStatus.FAILED
  assert final.error_code == "VALIDATION"
  assert not any(call.startswith("generate_lesson_content") for call in generator.calls)


@pytest.mark.anyio
async def test_regenerating_a_lesson_replaces_previous_content(runtime: EngineRuntime, caller: CallerIdentity, content_repo: InMemoryContentRepository) -> None:
  tree = await _approved_outline(runtime, caller)
  intro = tree.sections[0].lessons[0]
  for _ in range(2):
    await runtime.service.submit_lesson_job(caller, outline_lesson_id=intro.id)
    await runtime.worker.run_once()

  lessons = await content_repo.list_generated_lessons(caller.tenant_id, "course-1")
  assert [lesson.outline_lesson_id for lesson in lessons] == [intro.id]
