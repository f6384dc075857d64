"""Outbound connectors: operator notifications and advisory LLM review."""

from swingbot.connectors.llm_review import AdvisoryLevel, LLMReviewer, ReviewContract, apply_review
from swingbot.connectors.notifier import (
    FanoutNotifier,
    NotificationSink,
    NullNotifier,
    TelegramNotifier,
    WebhookNotifier,
    build_notifier,
    safe_notify,
)

__all__ = [
    "AdvisoryLevel",
    "LLMReviewer",
    "ReviewContract",
    "apply_review",
    "NotificationSink",
    "NullNotifier",
    "TelegramNotifier",
    "WebhookNotifier",
    "FanoutNotifier",
    "build_notifier",
    "safe_notify",
]
