from fastapi import APIRouter, Depends, Query

from app.api.deps import get_caller, get_service
from app.api.models import ComponentResponse, LessonListResponse, LessonResponse, LessonSummaryResponse, RegenerateComponentRequest
from app.integrations.contracts import CallerIdentity
from app.services.jobs import GenerationService

router = APIRouter()


@router.get("/lessons", response_model=LessonListResponse)
async def list_lessons(  # noqa: B008
  course_id: str = Query(min_length=1),  # noqa: B008
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> LessonListResponse:
  """List the generated lessons of a course in outline order."""
  lessons = await service.list_generated_lessons(caller.tenant_id, course_id)
  return LessonListResponse(items=[LessonSummaryResponse.from_record(lesson) for lesson in lessons])


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(  # noqa: B008
  lesson_id: str,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> LessonResponse:
  return LessonResponse.from_tree(await service.get_generated_lesson(caller.tenant_id, lesson_id))


@router.post("/components/{component_id}/regenerate", response_model=ComponentResponse)
async def regenerate_component(  # noqa: B008
  component_id: str,
  payload: RegenerateComponentRequest,
  caller: CallerIdentity = Depends(get_caller),  # noqa: B008
  service: GenerationService = Depends(get_service),  # noqa: B008
) -> ComponentResponse:
  """Rewrite one lesson component following the caller's instruction."""
  return ComponentResponse.from_record(await service.regenerate_component(caller, component_id, payload.instruction))
