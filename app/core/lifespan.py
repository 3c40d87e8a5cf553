import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from app.core.database import dispose_engine
from app.core.logging import _initialize_logging
from app.services.runtime import EngineRuntime, build_runtime

logger = logging.getLogger("app.core.lifespan")

# Grace period on top of one poll interval for the in-flight job to reach a checkpoint.
_WORKER_STOP_GRACE_SECONDS = 30


def _safe_dsn(raw: str | None) -> str:
  if not raw:
    return "<unset>"
  try:
    return make_url(raw).render_as_string(hide_password=True)
  except ArgumentError:
    return "<invalid>"


async def _stop_worker(runtime: EngineRuntime, task: asyncio.Task[None], timeout: float) -> None:
  try:
    await asyncio.wait_for(task, timeout=timeout)
  except TimeoutError:
    logger.warning("Job worker did not stop in time; cancelling. worker_id=%s", runtime.worker.worker_id)
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await task


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Own the engine runtime and the per-process job worker for the lifetime of the app."""
  from app.config import get_settings

  settings = get_settings()
  _initialize_logging(settings)
  logger.info("Starting coursegen-engine environment=%s storage=%s pg_dsn=%s", settings.environment, settings.storage_backend, _safe_dsn(settings.pg_dsn))

  # A runtime installed by create_app wins over environment wiring.
  runtime: EngineRuntime | None = getattr(app.state, "runtime", None)
  if runtime is None:
    runtime = build_runtime(settings)
    app.state.runtime = runtime

  stop_event = asyncio.Event()
  worker_task: asyncio.Task[None] | None = None
  if settings.worker_enabled and getattr(app.state, "start_worker", True):
    worker_task = asyncio.create_task(runtime.worker.run_forever(stop_event), name="coursegen-job-worker")
    logger.info("Job worker started worker_id=%s poll_seconds=%s", runtime.worker.worker_id, settings.worker_poll_seconds)
  else:
    logger.info("Job worker disabled for this process.")

  try:
    yield
  finally:
    stop_event.set()
    if worker_task is not None:
      await _stop_worker(runtime, worker_task, settings.worker_poll_seconds + _WORKER_STOP_GRACE_SECONDS)
    await dispose_engine()
    logger.info("Shutdown complete.")
