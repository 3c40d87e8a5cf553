"""Shared FastAPI dependencies for caller identity and the engine runtime."""

from __future__ import annotations

from fastapi import Depends, Request

from app.integrations.contracts import CallerIdentity
from app.services.jobs import GenerationService
from app.services.runtime import EngineRuntime


def get_runtime(request: Request) -> EngineRuntime:
  """Return the runtime installed on the application at startup."""
  runtime = getattr(request.app.state, "runtime", None)
  if runtime is None:
    raise RuntimeError("Engine runtime is not initialised.")
  return runtime


def get_service(runtime: EngineRuntime = Depends(get_runtime)) -> GenerationService:  # noqa: B008
  return runtime.service


def get_caller(request: Request, runtime: EngineRuntime = Depends(get_runtime)) -> CallerIdentity:  # noqa: B008
  """Resolve tenant and user from the trusted gateway headers."""
  return runtime.identity.resolve(request.headers)
