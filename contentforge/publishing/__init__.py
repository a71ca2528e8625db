"""Webhook publishing and the scheduled post checker."""

from contentforge.publishing.scheduler import CheckSummary, ScheduledPostChecker
from contentforge.publishing.webhook import Delivery, WebhookPublisher

__all__ = ["CheckSummary", "Delivery", "ScheduledPostChecker", "WebhookPublisher"]
