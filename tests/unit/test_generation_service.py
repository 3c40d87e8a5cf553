from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.errors import InvalidTransitionError, NotFoundError, RetryLimitReachedError, ValidationError
from app.integrations.contracts import CallerIdentity
from app.jobs.models import JobFilter, JobStatus, JobType, JobUpdate, SubState
from app.services.runtime import EngineRuntime
from app.storage.content_repo import ApprovalStatus, ComponentType
from app.storage.memory_jobs_repo import InMemoryJobsRepository
from tests.fakes import FakeClock, RecordingInvalidator, ScriptedGenerator


async def _submit_outline(runtime: EngineRuntime, caller: CallerIdentity, **overrides):
  values = {"course_id": "course-1", "course_title": "Secure Coding", "knowledge_source_ids": ["ks-1"], "target_audience_ids": ["aud-1"], "desired_outcome": "Fewer vulnerabilities"}
  values.update(overrides)
  return await runtime.service.submit_outline_job(caller, **values)


@pytest.mark.anyio
async def test_submit_outline_queues_job_with_frozen_input(runtime: EngineRuntime, caller: CallerIdentity, content_repo) -> None:
  job = await _submit_outline(runtime, caller, knowledge_source_ids=[" ks-1 ", "ks-1", ""])
  assert job.status == JobStatus.QUEUED
  assert job.job_type == JobType.OUTLINE
  assert job.progress_percent == 0
  assert job.max_retries == 3

  generation_input = await content_repo.get_generation_input(caller.tenant_id, job.generation_input_id)
  assert generation_input is not None
  assert generation_input.knowledge_source_ids == ("ks-1",)

  again = await _submit_outline(runtime, caller)
  assert again.id != job.id
  assert again.generation_input_id == job.generation_input_id


@pytest.mark.parametrize(
  "overrides",
  [
    {"course_title": "   "},
    {"course_id": ""},
    {"knowledge_source_ids": []},
    {"target_audience_ids": [" "]},
  ],
)
@pytest.mark.anyio
async def test_submit_outline_rejects_missing_fields(runtime: EngineRuntime, caller: CallerIdentity, jobs_repo: InMemoryJobsRepository, overrides: dict) -> None:
  with pytest.raises(ValidationError):
    await _submit_outline(runtime, caller, **overrides)
  _, total = await jobs_repo.list(caller.tenant_id, JobFilter())
  assert total == 0


@pytest.mark.anyio
async def test_lesson_job_on_pending_outline_is_rejected_without_creating_a_job(runtime: EngineRuntime, caller: CallerIdentity, jobs_repo: InMemoryJobsRepository) -> None:
  await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  tree = await runtime.service.get_outline(caller.tenant_id, "course-1")

  with pytest.raises(ValidationError):
    await runtime.service.submit_lesson_job(caller, outline_lesson_id=tree.sections[0].lessons[0].id)
  _, total = await jobs_repo.list(caller.tenant_id, JobFilter(job_type=JobType.LESSON_CONTENT))
  assert total == 0


@pytest.mark.anyio
async def test_lesson_job_for_unknown_lesson_is_not_found(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  with pytest.raises(NotFoundError):
    await runtime.service.submit_lesson_job(caller, outline_lesson_id="missing")


@pytest.mark.anyio
async def test_jobs_are_invisible_to_other_tenants(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  job = await _submit_outline(runtime, caller)
  with pytest.raises(NotFoundError):
    await runtime.service.get_job("tenant-2", job.id)


@pytest.mark.anyio
async def test_cancel_terminal_job_is_rejected(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  job = await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  with pytest.raises(InvalidTransitionError):
    await runtime.service.cancel_job(caller.tenant_id, job.id)


@pytest.mark.anyio
async def test_cancel_queued_job_means_worker_never_runs_it(runtime: EngineRuntime, caller: CallerIdentity, generator: ScriptedGenerator) -> None:
  job = await _submit_outline(runtime, caller)
  cancelled = await runtime.service.cancel_job(caller.tenant_id, job.id)
  assert cancelled.status == JobStatus.CANCELLED
  assert await runtime.worker.run_once() is None
  assert generator.calls == []

  stored = await runtime.service.get_job(caller.tenant_id, job.id)
  assert stored.started_at is not None
  assert stored.completed_at is not None


@pytest.mark.anyio
async def test_cancel_is_rejected_while_output_is_being_stored(runtime: EngineRuntime, caller: CallerIdentity, jobs_repo: InMemoryJobsRepository, clock: FakeClock) -> None:
  job = await _submit_outline(runtime, caller)
  await jobs_repo.claim_next(worker_id="worker-a", stale_before=clock() - timedelta(seconds=900))
  storing = JobUpdate(status=JobStatus.PROCESSING, sub_state=SubState.STORING, progress_percent=70, progress_message="Storing outline")
  await jobs_repo.update(caller.tenant_id, job.id, worker_id="worker-a", update=storing)

  with pytest.raises(InvalidTransitionError, match="storing its output"):
    await runtime.service.cancel_job(caller.tenant_id, job.id)
  assert (await runtime.service.get_job(caller.tenant_id, job.id)).status == JobStatus.PROCESSING


@pytest.mark.anyio
async def test_retry_reuses_row_until_cap(runtime: EngineRuntime, caller: CallerIdentity, generator: ScriptedGenerator, jobs_repo: InMemoryJobsRepository) -> None:
  generator.fail_plan = True
  job = await _submit_outline(runtime, caller)
  await runtime.worker.run_once()

  for attempt in range(1, 4):
    retried = await runtime.service.retry_job(caller.tenant_id, job.id)
    assert retried.id == job.id
    assert retried.retry_count == attempt
    assert retried.status == JobStatus.QUEUED
    failed = await runtime.worker.run_once()
    assert failed is not None and failed.status == JobStatus.FAILED

  with pytest.raises(RetryLimitReachedError):
    await runtime.service.retry_job(caller.tenant_id, job.id)
  _, total = await jobs_repo.list(caller.tenant_id, JobFilter())
  assert total == 1


@pytest.mark.anyio
async def test_retry_of_non_failed_job_is_rejected(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  job = await _submit_outline(runtime, caller)
  with pytest.raises(InvalidTransitionError):
    await runtime.service.retry_job(caller.tenant_id, job.id)


@pytest.mark.anyio
async def test_list_jobs_validates_and_clamps_limit(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  await _submit_outline(runtime, caller)
  with pytest.raises(ValidationError):
    await runtime.service.list_jobs(caller.tenant_id, JobFilter(limit=0))
  jobs, total = await runtime.service.list_jobs(caller.tenant_id, JobFilter(limit=10_000))
  assert total == 1 and len(jobs) == 1


@pytest.mark.anyio
async def test_outline_approval_is_a_one_way_decision(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  tree = await runtime.service.get_outline(caller.tenant_id, "course-1")

  with pytest.raises(ValidationError):
    await runtime.service.reject_outline(caller, tree.outline.id, "  ")

  approved = await runtime.service.approve_outline(caller, tree.outline.id)
  assert approved.approval_status == ApprovalStatus.APPROVED
  assert approved.approved_by_user_id == caller.user_id
  assert approved.approved_at is not None

  with pytest.raises(InvalidTransitionError):
    await runtime.service.reject_outline(caller, tree.outline.id, "Too late")


@pytest.mark.anyio
async def test_new_outline_run_creates_next_version(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  first = await runtime.service.get_outline(caller.tenant_id, "course-1")
  await runtime.service.reject_outline(caller, first.outline.id, "Needs more practice")

  await _submit_outline(runtime, caller, additional_context="Add labs")
  await runtime.worker.run_once()
  latest = await runtime.service.get_outline(caller.tenant_id, "course-1")
  assert latest.outline.version == 2
  assert latest.outline.approval_status == ApprovalStatus.PENDING_REVIEW
  assert latest.outline.generation_input_id != first.outline.generation_input_id


@pytest.mark.anyio
async def test_get_outline_for_unknown_course_is_not_found(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  with pytest.raises(NotFoundError):
    await runtime.service.get_outline(caller.tenant_id, "nope")


@pytest.mark.anyio
async def test_regenerate_component_updates_payload_and_invalidates_cache(runtime: EngineRuntime, caller: CallerIdentity, generator: ScriptedGenerator, cache_invalidator: RecordingInvalidator) -> None:
  await _submit_outline(runtime, caller)
  await runtime.worker.run_once()
  tree = await runtime.service.get_outline(caller.tenant_id, "course-1")
  await runtime.service.approve_outline(caller, tree.outline.id)
  await runtime.service.submit_lesson_job(caller, outline_lesson_id=tree.sections[0].lessons[0].id)
  lesson_job = await runtime.worker.run_once()
  assert lesson_job is not None and lesson_job.result_json is not None
  cache_invalidator.invalidated.clear()

  lesson = await runtime.service.get_generated_lesson(caller.tenant_id, lesson_job.result_json["generated_lesson_id"])
  text_component = next(component for component in lesson.components if component.component_type == ComponentType.TEXT)
  updated = await runtime.service.regenerate_component(caller, text_component.id, "Rewrite it")

  assert updated.id == text_component.id
  assert updated.payload == {"html": "<p>Rewritten</p>", "plaintext": "Rewritten"}
  assert cache_invalidator.invalidated == [(caller.tenant_id, "course-1")]
  request = generator.regenerate_requests[0]
  assert request.instruction == "Rewrite it"
  assert "Lesson: Intro" in request.lesson_context


@pytest.mark.anyio
async def test_regenerate_unknown_component_is_not_found(runtime: EngineRuntime, caller: CallerIdentity) -> None:
  with pytest.raises(NotFoundError):
    await runtime.service.regenerate_component(caller, "missing", "Rewrite it")
