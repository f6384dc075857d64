import logging

import orjson
import pytest
import structlog
from prometheus_client import CollectorRegistry

from swingbot.config.settings import MonitoringConfig
from swingbot.monitoring import metrics as metrics_module
from swingbot.monitoring.logging import bind_run_context, configure_logging, redact_secrets
from swingbot.monitoring.metrics import Metrics, start_metrics


def _json_lines(out: str) -> list[dict]:
    return [orjson.loads(line) for line in out.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_errors_go_to_rotating_file(self, workspace_tmp_path, restore_logging) -> None:
        logs = workspace_tmp_path / "logs"
        configure_logging("INFO", str(logs), MonitoringConfig(error_log_backup_count=2))

        log = structlog.get_logger("swingbot.test")
        log.info("paper_reconciled", portfolio="default")
        log.error("ledger_write_failed", portfolio="default")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = (logs / "errors.log").read_text()
        assert "ledger_write_failed" in content
        assert "paper_reconciled" not in content

    def test_events_are_json_with_run_context(self, capsys, restore_logging) -> None:
        configure_logging("INFO")
        bind_run_context(tool="reconcile", portfolio="swing")
        structlog.get_logger("swingbot.test").info("paper_reconciled", equity=100_000.0)

        [event] = [e for e in _json_lines(capsys.readouterr().out) if e["event"] == "paper_reconciled"]
        assert event["level"] == "info"
        assert event["tool"] == "reconcile"
        assert event["portfolio"] == "swing"
        assert "timestamp" in event

    def test_level_filters_lower_events(self, capsys, restore_logging) -> None:
        configure_logging("WARNING")
        log = structlog.get_logger("swingbot.test")
        log.info("signal_generated")
        log.warning("risk_check_failed", check="daily_loss")
        events = [e["event"] for e in _json_lines(capsys.readouterr().out)]
        assert "signal_generated" not in events
        assert "risk_check_failed" in events

    def test_secrets_are_redacted(self, capsys, restore_logging) -> None:
        configure_logging("INFO")
        structlog.get_logger("swingbot.test").info("llm_configured", api_key="sk-live-123", model="gpt")
        out = capsys.readouterr().out
        assert "sk-live-123" not in out
        [event] = [e for e in _json_lines(out) if e["event"] == "llm_configured"]
        assert event["api_key"] == "***"
        assert event["model"] == "gpt"


def test_redact_secrets_leaves_empty_values() -> None:
    event = redact_secrets(None, "info", {"event": "x", "telegram_bot_token": "", "webhook_url": "https://h/k"})
    assert event["telegram_bot_token"] == ""
    assert event["webhook_url"] == "***"


class TestStartMetrics:
    def test_disabled_returns_none(self) -> None:
        assert start_metrics(MonitoringConfig(metrics_enabled=False), CollectorRegistry()) is None

    def test_enabled_serves_on_configured_port(self, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr(
            metrics_module, "start_http_server", lambda port, registry: calls.append((port, registry))
        )
        registry = CollectorRegistry()
        metrics = start_metrics(MonitoringConfig(metrics_enabled=True, metrics_port=9464), registry)
        assert isinstance(metrics, Metrics)
        assert calls == [(9464, registry)]

    def test_port_in_use_keeps_metrics(self, monkeypatch) -> None:
        def busy(port, registry):
            raise OSError("address already in use")

        monkeypatch.setattr(metrics_module, "start_http_server", busy)
        metrics = start_metrics(MonitoringConfig(metrics_enabled=True), CollectorRegistry())
        assert metrics is not None
        metrics.update_portfolio("default", 100_000.0, 0.0, 0)
        assert metrics.registry.get_sample_value("paper_equity", {"portfolio": "default"}) == 100_000.0


def test_portfolio_gauges(metrics) -> None:
    metrics.update_portfolio("swing", 98_000.0, 2.0, 3)
    assert metrics.registry.get_sample_value("paper_drawdown_percent", {"portfolio": "swing"}) == 2.0
    assert metrics.registry.get_sample_value("paper_open_positions", {"portfolio": "swing"}) == 3.0


@pytest.mark.parametrize("level", ["debug", "INFO", "Warning"])
def test_configure_logging_accepts_any_case(level, restore_logging) -> None:
    configure_logging(level)
    assert logging.getLogger().level == getattr(logging, level.upper())
