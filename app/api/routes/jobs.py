import logging

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_caller, get_service
from app.api.models import JobListResponse, JobResponse, SubmitLessonJobRequest, SubmitOutlineJobRequest
from app.integrations.contracts import CallerIdentity
from app.jobs.models import JobFilter, JobStatus, JobType
from app.services.jobs import GenerationService

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.post("/outline", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_outline_job(  # noqa: B008
  payload: SubmitOutlineJobRequest,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobResponse:
  """Queue outline generation for a course."""
  job = await service.submit_outline_job(
    caller,
    course_id=payload.course_id,
    course_title=payload.course_title,
    knowledge_source_ids=payload.knowledge_source_ids,
    target_audience_ids=payload.target_audience_ids,
    desired_outcome=payload.desired_outcome,
    additional_context=payload.additional_context,
  )
  return JobResponse.from_job(job)


@router.post("/lesson", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_lesson_job(  # noqa: B008
  payload: SubmitLessonJobRequest,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobResponse:
  """Queue content generation for one lesson of an approved outline."""
  job = await service.submit_lesson_job(caller, outline_lesson_id=payload.outline_lesson_id)
  return JobResponse.from_job(job)


@router.get("", response_model=JobListResponse)
async def list_jobs(  # noqa: B008
  job_status: JobStatus | None = Query(default=None, alias="status"),  # noqa: B008
  job_type: JobType | None = Query(default=None),  # noqa: B008
  course_id: str | None = Query(default=None),  # noqa: B008
  mine: bool = Query(default=False, description="Only jobs created by the caller."),  # noqa: B008
  limit: int = Query(default=50, ge=1, le=200),  # noqa: B008
  offset: int = Query(default=0, ge=0),  # noqa: B008
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobListResponse:
  """List the tenant's jobs, newest first."""
  job_filter = JobFilter(status=job_status, job_type=job_type, course_id=course_id, created_by_user_id=caller.user_id if mine else None, limit=limit, offset=offset)
  jobs, total = await service.list_jobs(caller.tenant_id, job_filter)
  return JobListResponse(items=[JobResponse.from_job(job) for job in jobs], total=total, limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(  # noqa: B008
  job_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobResponse:
  """Fetch the status and progress of a job."""
  return JobResponse.from_job(await service.get_job(caller.tenant_id, job_id))


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobResponse:
  """Cancel a queued or processing job."""
  return JobResponse.from_job(await service.cancel_job(caller.tenant_id, job_id))


@router.post("/{job_id}/retry", response_model=JobResponse)
async def retry_job(  # noqa: B008
  job_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> JobResponse:
  """Re-enqueue a failed job."""
  return JobResponse.from_job(await service.retry_job(caller.tenant_id, job_id))
