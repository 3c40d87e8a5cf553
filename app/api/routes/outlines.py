from fastapi import APIRouter, Depends

from app.api.deps import get_caller, get_service
from app.api.models import OutlineResponse, OutlineSummaryResponse, RejectOutlineRequest
from app.integrations.contracts import CallerIdentity
from app.services.jobs import GenerationService

router = APIRouter()


@router.get("/courses/{course_id}/outline", response_model=OutlineResponse)
async def get_course_outline(  # noqa: B008
  course_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> OutlineResponse:
  """Return the latest outline version for a course."""
  return OutlineResponse.from_tree(await service.get_outline(caller.tenant_id, course_id))


@router.post("/outlines/{outline_id}/approve", response_model=OutlineSummaryResponse)
async def approve_outline(  # noqa: B008
  outline_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> OutlineSummaryResponse:
  return OutlineSummaryResponse.from_record(await service.approve_outline(caller, outline_id))


@router.post("/outlines/{outline_id}/reject", response_model=OutlineSummaryResponse)
async def reject_outline(  # noqa: B008
  outline_id: str,
  payload: RejectOutlineRequest,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> OutlineSummaryResponse:
  return OutlineSummaryResponse.from_record(await service.reject_outline(caller, outline_id, payload.reason))
