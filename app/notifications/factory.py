"""Factory helpers for notification delivery."""

from __future__ import annotations

from app.config import Settings
from app.notifications.contracts import NotificationSink
from app.notifications.webhook_sender import NullNotificationSink, WebhookConfig, WebhookNotificationSink


def build_notification_sink(settings: Settings) -> NotificationSink:
  """Construct the notification sink based on environment configuration."""
  # Delivery is disabled unless an endpoint is configured.
  if settings.notification_webhook_url:
    return WebhookNotificationSink(config=WebhookConfig(url=settings.notification_webhook_url, timeout_seconds=settings.collaborator_timeout_seconds))
  return NullNotificationSink()
