"""Notification delivery implementations."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

from app.notifications.contracts import JobNotification, NotificationProviderError, NotificationSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookConfig:
  """Webhook endpoint that receives job notifications."""

  url: str
  timeout_seconds: float


class WebhookNotificationSink(NotificationSink):
  """POST job notifications as JSON to a configured endpoint."""

  def __init__(self, *, config: WebhookConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._config = config
    self._transport = transport

  async def notify_job_terminal(self, notification: JobNotification) -> None:
    payload = {"event": "job.terminal", **asdict(notification)}
    try:
      # Never trust environment proxy variables for internal delivery.
      async with httpx.AsyncClient(transport=self._transport, timeout=self._config.timeout_seconds, trust_env=False) as client:
        response = await client.post(self._config.url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      raise NotificationProviderError(f"Notification endpoint returned {exc.response.status_code} for job {notification.job_id}.") from exc
    except httpx.RequestError as exc:
      raise NotificationProviderError(f"Notification endpoint unreachable for job {notification.job_id}: {exc}") from exc

    logger.info("Job notification delivered job_id=%s status=%s", notification.job_id, notification.status)


class NullNotificationSink(NotificationSink):
  """No-op sink used when no notification endpoint is configured."""

  async def notify_job_terminal(self, notification: JobNotification) -> None:
    """Drop the notification while recording a debug log."""
    logger.debug("Notifications disabled; dropping job_id=%s status=%s", notification.job_id, notification.status)
