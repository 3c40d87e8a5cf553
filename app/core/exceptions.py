import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import InvalidTransitionError, JobEngineError, NotFoundError, ProviderError, RetryLimitReachedError, StoreError, ValidationError
from app.integrations.contracts import CollaboratorError, IdentityError

logger = logging.getLogger("uvicorn.error")

INTERNAL_DETAIL = "Internal Server Error"

# Checked in order; the conflict errors subclass ValidationError so they come first.
_DOMAIN_STATUS: tuple[tuple[tuple[type[JobEngineError], ...], int], ...] = (
  ((RetryLimitReachedError, InvalidTransitionError), status.HTTP_409_CONFLICT),
  ((ValidationError,), status.HTTP_400_BAD_REQUEST),
  ((NotFoundError,), status.HTTP_404_NOT_FOUND),
  ((ProviderError,), status.HTTP_502_BAD_GATEWAY),
  ((StoreError,), status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _respond(request: Request, status_code: int, detail: Any, *, code: str | None = None) -> JSONResponse:
  """Every error body carries detail, plus code and requestId when known."""
  body: dict[str, Any] = {"detail": detail}
  if code:
    body["code"] = code
  request_id = _request_id(request)
  if request_id:
    body["requestId"] = request_id
  return JSONResponse(status_code=status_code, content=body)


def _json_safe(value: Any) -> Any:
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, BaseException):
    return f"{type(value).__name__}: {value}" if str(value) else type(value).__name__
  return str(value)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Strip submitted values from validation errors; request bodies may hold tenant content."""
  cleaned: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    ctx = entry.get("ctx")
    if isinstance(ctx, dict):
      entry["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    cleaned.append(_json_safe(entry))
  return cleaned


def _status_for_domain_error(exc: JobEngineError) -> int:
  for error_types, status_code in _DOMAIN_STATUS:
    if isinstance(exc, error_types):
      return status_code
  return status.HTTP_500_INTERNAL_SERVER_ERROR


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_DETAIL)


async def domain_exception_handler(request: Request, exc: JobEngineError) -> JSONResponse:
  """Answer with the mapped status and the error's stable code."""
  status_code = _status_for_domain_error(exc)
  if status_code < 500:
    logger.info("Domain error request_id=%s path=%s status_code=%s code=%s: %s", _request_id(request), request.url.path, status_code, exc.code, exc.message)
    return _respond(request, status_code, exc.message, code=exc.code)

  logger.error("Domain error request_id=%s path=%s code=%s: %s", _request_id(request), request.url.path, exc.code, exc.message, exc_info=True)
  # Provider and store messages are written for callers; any other 5xx text stays in the logs.
  detail = exc.message if isinstance(exc, ProviderError | StoreError) else INTERNAL_DETAIL
  return _respond(request, status_code, detail, code=exc.code)


async def identity_exception_handler(request: Request, exc: IdentityError) -> JSONResponse:
  logger.warning("Caller identity rejected request_id=%s path=%s: %s", _request_id(request), request.url.path, exc)
  return _respond(request, status.HTTP_401_UNAUTHORIZED, str(exc), code="UNAUTHENTICATED")


async def collaborator_exception_handler(request: Request, exc: CollaboratorError) -> JSONResponse:
  logger.error("Collaborator call failed request_id=%s path=%s: %s", _request_id(request), request.url.path, exc)
  return _respond(request, status.HTTP_502_BAD_GATEWAY, "An upstream service is unavailable.", code="COLLABORATOR_ERROR")


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", _request_id(request), request.url.path, request.method, errors)
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  from app.config import get_settings

  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, exc.detail, exc_info=True)
    return _respond(request, exc.status_code, INTERNAL_DETAIL)

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, exc.detail)
  return _respond(request, exc.status_code, exc.detail)
