"""Retry logic for provider rate limiting."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (1.0, 4.0, 10.0)


def is_rate_limit_error(exc: Exception) -> bool:
  """Return True for 429 / quota exhaustion errors."""
  message = str(exc)
  is_quota_error = "RESOURCE_EXHAUSTED" in message.upper() or "Quota Exceeded" in message
  is_rate_limit = "429" in message or "Too Many Requests" in message
  return is_quota_error or is_rate_limit


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: Any, delays: Sequence[float] = DEFAULT_DELAYS, **kwargs: Any) -> T:
  """
  Execute a provider call, retrying only rate-limit and quota errors.

  This is transport-level retrying inside one provider call; it never re-runs a job.
  """
  for attempt, delay in enumerate(delays):
    try:
      return await func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
      if not is_rate_limit_error(exc):
        raise
      # Jitter keeps replicas from retrying in lockstep.
      wait = delay + random.uniform(0, delay / 2)
      logger.warning("Rate limited (attempt %d/%d); retrying in %.1fs: %s", attempt + 1, len(delays), wait, exc)
      await asyncio.sleep(wait)

  # Final attempt
  return await func(*args, **kwargs)
