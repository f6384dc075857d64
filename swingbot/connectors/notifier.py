"""Operator notifications over Telegram and generic webhooks."""

from __future__ import annotations

import hashlib
import html
from collections import deque
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
import structlog

from swingbot.config.settings import NotificationConfig
from swingbot.monitoring.metrics import Metrics


_log = structlog.get_logger(__name__)


def _format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _message_hash(message: str) -> str:
    return hashlib.md5(message.encode()).hexdigest()[:8]


class NotificationSink(Protocol):
    def notify(self, message: str, context: dict[str, Any] | None = None) -> None: ...


class NullNotifier:
    """Sink used when notifications are disabled; keeps the last `max_messages` for inspection."""

    def __init__(self, max_messages: int = 100) -> None:
        self.messages: deque[tuple[str, dict[str, Any]]] = deque(maxlen=max_messages)

    def notify(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.messages.append((message, dict(context or {})))


class _HttpNotifier:
    """Shared httpx plumbing with duplicate suppression.

    Identical messages inside `dedup_window_sec` are sent once.
    """

    def __init__(
        self,
        timeout_sec: float = 10.0,
        dedup_window_sec: int = 60,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client = httpx.Client(timeout=timeout_sec, transport=transport)
        self.dedup_window_sec = dedup_window_sec
        self._seen: dict[str, datetime] = {}

    def _is_duplicate(self, message: str) -> bool:
        now = datetime.now(timezone.utc)
        key = _message_hash(message)
        last = self._seen.get(key)
        if last is not None and (now - last).total_seconds() < self.dedup_window_sec:
            return True
        self._seen[key] = now
        if len(self._seen) > 1000:
            self._seen = {
                k: ts
                for k, ts in self._seen.items()
                if (now - ts).total_seconds() < self.dedup_window_sec
            }
        return False

    def _post(self, url: str, payload: dict[str, Any]) -> None:
        response = self.client.post(url, json=payload)
        response.raise_for_status()

    def close(self) -> None:
        self.client.close()


class TelegramNotifier(_HttpNotifier):
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")

    def notify(self, message: str, context: dict[str, Any] | None = None) -> None:
        if self._is_duplicate(message):
            _log.debug("notification_suppressed_duplicate", channel="telegram")
            return
        # parse_mode=HTML: markup characters in reasons and errors are escaped
        text = html.escape(message, quote=False)
        if context:
            details = "\n".join(html.escape(f"{k}: {v}", quote=False) for k, v in context.items())
            text = f"{text}\n{details}"
        self._post(
            f"{self.api_url}/bot{self.bot_token}/sendMessage",
            {"chat_id": self.chat_id, "text": text, "parse_mode": "HTML"},
        )
        _log.debug("notification_sent", channel="telegram")


class WebhookNotifier(_HttpNotifier):
    """POST a JSON payload to each URL; Slack and Discord URLs get their native shape."""

    def __init__(self, webhook_urls: list[str], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.webhook_urls = list(webhook_urls)

    @staticmethod
    def _payload(url: str, message: str, context: dict[str, Any]) -> dict[str, Any]:
        lowered = url.lower()
        if "slack" in lowered:
            return {"text": message}
        if "discord" in lowered:
            return {"content": message}
        return {
            "message": message,
            "context": context,
            "timestamp": _format_timestamp(datetime.now(timezone.utc)),
        }

    def notify(self, message: str, context: dict[str, Any] | None = None) -> None:
        if self._is_duplicate(message):
            _log.debug("notification_suppressed_duplicate", channel="webhook")
            return
        errors: list[str] = []
        for url in self.webhook_urls:
            try:
                self._post(url, self._payload(url, message, dict(context or {})))
            except httpx.HTTPError as exc:
                _log.error("webhook_failed", url=url, error=str(exc))
                errors.append(url)
        if errors:
            raise httpx.HTTPError(f"webhook delivery failed for {len(errors)} url(s)")


class FanoutNotifier:
    def __init__(self, sinks: list[NotificationSink]) -> None:
        self.sinks = sinks

    def notify(self, message: str, context: dict[str, Any] | None = None) -> None:
        for sink in self.sinks:
            safe_notify(sink, message, context)


def safe_notify(
    sink: NotificationSink | None,
    message: str,
    context: dict[str, Any] | None = None,
    metrics: Metrics | None = None,
) -> bool:
    """Deliver a notification without ever raising; returns whether it was delivered."""
    if sink is None:
        return False
    try:
        sink.notify(message, context)
        return True
    except Exception as exc:
        _log.warning("notification_failed", error=str(exc), message=message[:200])
        if metrics:
            metrics.notification_failures_total.inc()
        return False


def build_notifier(
    config: NotificationConfig,
    transport: httpx.BaseTransport | None = None,
) -> NotificationSink:
    """Build the sink described by `config`; disabled or unconfigured yields `NullNotifier`."""
    if not config.enabled:
        return NullNotifier()
    sinks: list[NotificationSink] = []
    if config.telegram_bot_token and config.telegram_chat_id:
        sinks.append(
            TelegramNotifier(
                config.telegram_bot_token,
                config.telegram_chat_id,
                api_url=config.telegram_api_url,
                timeout_sec=config.timeout_sec,
                transport=transport,
            )
        )
    if config.webhook_urls:
        sinks.append(
            WebhookNotifier(config.webhook_urls, timeout_sec=config.timeout_sec, transport=transport)
        )
    if not sinks:
        _log.warning("notifications_enabled_without_channels")
        return NullNotifier()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutNotifier(sinks)
