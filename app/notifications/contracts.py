"""Contracts for job terminal-transition notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class JobNotification:
  """Represents a job reaching a terminal status."""

  tenant_id: str
  user_id: str
  job_id: str
  job_type: str
  status: str
  progress_percent: int
  course_id: str | None = None
  error_code: str | None = None


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when the delivery endpoint rejects or drops a notification."""


class NotificationSink(Protocol):
  """Delivery contract for job notifications; callers never let failures fail a job."""

  async def notify_job_terminal(self, notification: JobNotification) -> None:
    """Deliver one terminal-transition notification."""
