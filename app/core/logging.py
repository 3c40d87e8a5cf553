import logging
import logging.handlers
import os
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from app.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(process)d - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_TRACEBACK_TAIL_LINES = 5

# Loggers that re-use the engine handlers instead of their own.
_ADOPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "alembic")
# Chatty at DEBUG and not useful for following a job.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "google_genai", "sqlalchemy.engine.Engine")

_log_file_path: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Keep the exception header and the innermost frames only."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) <= _TRACEBACK_TAIL_LINES + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-_TRACEBACK_TAIL_LINES:]])


def _rotated_name(default_name: str) -> str:
  """Name rotated files coursegen_<stamp>.log-1 instead of .log.1."""
  stem, _, index = default_name.rpartition(".")
  return f"{stem}-{index}" if index.isdigit() else default_name


def _open_log_file(settings: Settings) -> Path:
  log_dir = Path(settings.log_dir).resolve()
  log_path = log_dir / f"coursegen_{time.strftime('%Y%m%d_%H%M%S')}_{os.getpid()}.log"
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create log file at {log_path}: {exc}") from exc
  return log_path


def setup_logging(settings: Settings) -> Path:
  """Send every logger to stdout and a rotating file; returns the file path."""
  log_path = _open_log_file(settings)

  stream_handler = logging.StreamHandler(sys.stdout)
  stream_handler.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _rotated_name
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  handlers: list[logging.Handler] = [stream_handler, file_handler]

  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)
  for name in _ADOPTED_LOGGERS:
    adopted = logging.getLogger(name)
    adopted.handlers = list(handlers)
    adopted.propagate = False
  for name in _QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)
  return log_path


def _initialize_logging(settings: Settings) -> None:
  """Configure logging once per process."""
  global _log_file_path
  if _log_file_path is not None:
    return
  _log_file_path = setup_logging(settings)
  logger = logging.getLogger("app.core.logging")
  logger.info("Logging to %s", _log_file_path)
  logger.info("Storage backend=%s worker_enabled=%s poll_seconds=%s stale_seconds=%s", settings.storage_backend, settings.worker_enabled, settings.worker_poll_seconds, settings.claim_stale_seconds)
