"""Structured logging for swingbot processes.

Events go to stdout as JSON lines; ERROR and above are also kept in a rotating
`errors.log` under the configured logs path. Tools bind their run context
(`tool`, `portfolio`) once and every event in that run carries it.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Any, MutableMapping

import structlog

from swingbot.config.settings import MonitoringConfig


ERROR_LOG_NAME = "errors.log"
REDACTED = "***"
SECRET_FIELDS = frozenset({"api_key", "telegram_bot_token", "bot_token", "authorization", "webhook_url"})

# Telegram bot tokens travel in request URLs.
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in SECRET_FIELDS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _error_file_handler(logs_path: str, monitoring: MonitoringConfig | None) -> RotatingFileHandler:
    monitoring = monitoring or MonitoringConfig()
    log_dir = Path(logs_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / ERROR_LOG_NAME,
        maxBytes=monitoring.error_log_max_bytes,
        backupCount=monitoring.error_log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    log_level: str = "INFO",
    logs_path: str | None = None,
    monitoring: MonitoringConfig | None = None,
) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    if logs_path:
        logging.getLogger().addHandler(_error_file_handler(logs_path, monitoring))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_run_context(**context: Any) -> None:
    """Attach `context` to every event logged for the rest of this run."""
    structlog.contextvars.bind_contextvars(**context)
