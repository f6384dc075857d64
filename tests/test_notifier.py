import httpx
import orjson
import pytest

from swingbot.config.settings import NotificationConfig
from swingbot.connectors.notifier import (
    FanoutNotifier,
    NullNotifier,
    TelegramNotifier,
    WebhookNotifier,
    build_notifier,
    safe_notify,
)


class _Recorder:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code == 200})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def payloads(self) -> list[dict]:
        return [orjson.loads(r.content) for r in self.requests]


def _config(**overrides) -> NotificationConfig:
    data = dict(enabled=True)
    data.update(overrides)
    return NotificationConfig(**data)


class TestBuildNotifier:
    def test_disabled_yields_null_sink(self) -> None:
        assert isinstance(build_notifier(NotificationConfig()), NullNotifier)

    def test_enabled_without_channels_yields_null_sink(self) -> None:
        assert isinstance(build_notifier(_config()), NullNotifier)

    def test_single_and_multiple_channels(self) -> None:
        telegram = _config(telegram_bot_token="abc", telegram_chat_id="42")
        assert isinstance(build_notifier(telegram), TelegramNotifier)
        both = _config(
            telegram_bot_token="abc",
            telegram_chat_id="42",
            webhook_urls=["https://example.com/hook"],
        )
        assert isinstance(build_notifier(both), FanoutNotifier)


class TestTelegramNotifier:
    def test_posts_message_with_context(self) -> None:
        recorder = _Recorder()
        notifier = build_notifier(
            _config(telegram_bot_token="abc", telegram_chat_id="42"), transport=recorder.transport
        )
        notifier.notify("PAPER ENTRY: LONG 10 RELIANCE", {"stop_loss": 95.0})
        [request] = recorder.requests
        assert request.url.path == "/botabc/sendMessage"
        payload = recorder.payloads()[0]
        assert payload["chat_id"] == "42"
        assert payload["text"] == "PAPER ENTRY: LONG 10 RELIANCE\nstop_loss: 95.0"

    def test_markup_in_reasons_is_escaped(self) -> None:
        recorder = _Recorder()
        notifier = TelegramNotifier("abc", "42", transport=recorder.transport)
        notifier.notify("ORDER FAILED: qty <1 & price > LTP", {"error": "<html> 502"})
        payload = recorder.payloads()[0]
        assert payload["parse_mode"] == "HTML"
        assert payload["text"] == "ORDER FAILED: qty &lt;1 &amp; price &gt; LTP\nerror: &lt;html&gt; 502"

    def test_duplicate_messages_are_suppressed(self) -> None:
        recorder = _Recorder()
        notifier = TelegramNotifier("abc", "42", transport=recorder.transport)
        notifier.notify("APPROVAL REQUIRED")
        notifier.notify("APPROVAL REQUIRED")
        notifier.notify("ORDER PLACED")
        assert len(recorder.requests) == 2

    def test_http_error_propagates(self) -> None:
        notifier = TelegramNotifier("abc", "42", transport=_Recorder(500).transport)
        with pytest.raises(httpx.HTTPStatusError):
            notifier.notify("ORDER PLACED")


class TestWebhookNotifier:
    def test_payload_shape_follows_destination(self) -> None:
        recorder = _Recorder()
        notifier = WebhookNotifier(
            [
                "https://hooks.slack.com/services/T/B/X",
                "https://discord.com/api/webhooks/1/abc",
                "https://example.com/hook",
            ],
            transport=recorder.transport,
        )
        notifier.notify("LARGE ORDER: INFY", {"quantity": 8})
        slack, discord, generic = recorder.payloads()
        assert slack == {"text": "LARGE ORDER: INFY"}
        assert discord == {"content": "LARGE ORDER: INFY"}
        assert generic["message"] == "LARGE ORDER: INFY"
        assert generic["context"] == {"quantity": 8}
        assert generic["timestamp"].endswith("Z")

    def test_failed_url_raises_after_trying_all(self) -> None:
        recorder = _Recorder(502)
        notifier = WebhookNotifier(
            ["https://example.com/a", "https://example.com/b"], transport=recorder.transport
        )
        with pytest.raises(httpx.HTTPError):
            notifier.notify("ORDER REJECTED")
        assert len(recorder.requests) == 2


class TestNullNotifier:
    def test_keeps_only_recent_messages(self) -> None:
        sink = NullNotifier(max_messages=3)
        for n in range(5):
            sink.notify(f"PAPER EXIT {n}")
        assert [message for message, _ in sink.messages] == ["PAPER EXIT 2", "PAPER EXIT 3", "PAPER EXIT 4"]


class TestSafeNotify:
    def test_failure_is_logged_and_counted(self, metrics) -> None:
        notifier = TelegramNotifier("abc", "42", transport=_Recorder(500).transport)
        assert safe_notify(notifier, "ORDER PLACED", metrics=metrics) is False
        assert metrics.registry.get_sample_value("notification_failures_total") == 1

    def test_missing_sink(self) -> None:
        assert safe_notify(None, "ORDER PLACED") is False

    def test_delivery(self) -> None:
        sink = NullNotifier()
        assert safe_notify(sink, "ORDER PLACED", {"order_id": "x"}) is True
        assert list(sink.messages) == [("ORDER PLACED", {"order_id": "x"})]

    def test_fanout_isolates_failing_sink(self) -> None:
        good = NullNotifier()
        bad = TelegramNotifier("abc", "42", transport=_Recorder(500).transport)
        FanoutNotifier([bad, good]).notify("PAPER SUMMARY default")
        assert list(good.messages) == [("PAPER SUMMARY default", {})]
