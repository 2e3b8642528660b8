from __future__ import annotations

import json
import logging
from collections.abc import MutableMapping
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from core.config import LoggingConfig

# Extras attached by TicketLoggerAdapter / call sites; emitted by JsonFormatter when set.
CONTEXT_FIELDS = ("ticket_id", "action", "seq")
QUIET_LOGGERS = ("aiohttp", "aiohttp.access", "redis", "asyncio")
PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | ticket=%(ticket_id)s | %(message)s"
NO_TICKET = "-"


class TicketContextFilter(logging.Filter):
    """Give every record a ``ticket_id`` so the plain format never fails on it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "ticket_id", None) is None:
            record.ticket_id = NO_TICKET
        return True


class TicketLoggerAdapter(logging.LoggerAdapter):
    """Binds a ticket id to every record; per-call ``extra`` is merged on top."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def ticket_logger(logger: logging.Logger, ticket_id: str | None) -> TicketLoggerAdapter:
    return TicketLoggerAdapter(logger, {"ticket_id": ticket_id})


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != NO_TICKET:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def _plain_formatter() -> logging.Formatter:
    return logging.Formatter(fmt=PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _console_handler(config: LoggingConfig) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if config.json_console else _plain_formatter())
    return handler


def _file_handler(config: LoggingConfig) -> logging.Handler:
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_dir / config.file_name,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_plain_formatter())
    return handler


def configure_logging(config: LoggingConfig) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    context = TicketContextFilter()
    for handler in (_console_handler(config), _file_handler(config)):
        handler.addFilter(context)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
