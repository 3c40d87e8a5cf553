from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import jobs, lessons, outlines
from app.config import get_settings
from app.core.errors import JobEngineError
from app.core.exceptions import collaborator_exception_handler, domain_exception_handler, global_exception_handler, http_exception_handler, identity_exception_handler, request_validation_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.integrations.contracts import CollaboratorError, IdentityError
from app.integrations.identity import TENANT_HEADER, USER_HEADER
from app.services.runtime import EngineRuntime


def create_app(*, runtime: EngineRuntime | None = None, start_worker: bool = True) -> FastAPI:
  """Build the API application; a pre-built runtime skips environment wiring at startup."""
  settings = get_settings()
  app = FastAPI(title="coursegen-engine", version="0.1.0", lifespan=lifespan)
  app.state.start_worker = start_worker
  if runtime is not None:
    app.state.runtime = runtime

  app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", TENANT_HEADER, USER_HEADER], expose_headers=["content-length", "x-request-id"])

  app.add_exception_handler(Exception, global_exception_handler)
  app.add_exception_handler(HTTPException, http_exception_handler)
  app.add_exception_handler(JobEngineError, domain_exception_handler)
  app.add_exception_handler(CollaboratorError, collaborator_exception_handler)
  app.add_exception_handler(IdentityError, identity_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  app.add_middleware(RequestLoggingMiddleware)
  app.add_middleware(SecurityHeadersMiddleware)

  @app.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    """Return a simple health status."""
    return {"status": "ok", "version": "0.1.0"}

  app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
  app.include_router(outlines.router, prefix="/v1", tags=["outlines"])
  app.include_router(lessons.router, prefix="/v1", tags=["lessons"])
  return app


app = create_app()
