"""Webhook handling for the bridge.

This module verifies and parses the two inbound delivery types:
- GitHub pull_request events (labeled, synchronize, ...)
- CircleCI build completion callbacks
"""

from .handler import WebhookHandler, create_webhook_handler
from .models import (
    CallbackParseResult,
    CallbackStatus,
    PullRequestAction,
    PullRequestEvent,
)

__all__ = [
    "CallbackParseResult",
    "CallbackStatus",
    "PullRequestAction",
    "PullRequestEvent",
    "WebhookHandler",
    "create_webhook_handler",
]
