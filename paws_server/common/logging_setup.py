"""
Structured Logging

Components log through children of the ``paws`` logger. One handler on
that parent writes JSON lines (or plain text with PAWS_LOG_FORMAT=text) to
stdout at PAWS_LOG_LEVEL. Every record carries its component name and any
``extra`` fields, so notifications and sensor transitions can be filtered
by push type or sensor domain.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from paws_server.common.timestamp import to_iso

ROOT_LOGGER = "paws"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else was passed via ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "service", "taskName"}

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record, timestamps in the store's ISO format"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": to_iso(datetime.fromtimestamp(record.created, timezone.utc)),
            "level": record.levelname,
            "service": getattr(record, "service", record.name.removeprefix(f"{ROOT_LOGGER}.")),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Adds the component name to every record, keeping caller extras"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


class _StdoutHandler(logging.StreamHandler):
    """Writes to whatever sys.stdout is when the record is emitted"""

    def __init__(self, level: int = logging.NOTSET):
        logging.Handler.__init__(self, level)

    @property
    def stream(self):
        return sys.stdout


def setup_logging(
    log_level: str | None = None,
    json_format: bool | None = None,
) -> logging.Logger:
    """
    Configure the shared ``paws`` handler. Safe to call again; the previous
    handler is replaced.

    Args:
        log_level: Level name; defaults to $PAWS_LOG_LEVEL, then INFO
        json_format: JSON lines or plain text; defaults to $PAWS_LOG_FORMAT
            (anything but "json" selects text)

    Returns:
        The ``paws`` parent logger
    """
    global _configured

    if log_level is None:
        log_level = os.environ.get("PAWS_LOG_LEVEL", "INFO")
    if json_format is None:
        json_format = os.environ.get("PAWS_LOG_FORMAT", "json").lower() == "json"

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in [h for h in root.handlers if isinstance(h, _StdoutHandler)]:
        root.removeHandler(handler)

    handler = _StdoutHandler()
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.propagate = False

    _configured = True
    return root


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger for one component (e.g. "ingest", "store.event_log")"""
    if not _configured:
        setup_logging()
    logger = logging.getLogger(f"{ROOT_LOGGER}.{service_name}")
    return ServiceLoggerAdapter(logger, {"service": service_name})


def log_notification(
    logger: logging.Logger | logging.LoggerAdapter,
    message: str,
    notification_type: str,
    push_type: str | None = None,
) -> None:
    """Log a recorded notification"""
    log_method = {
        "info": logger.info,
        "warning": logger.warning,
        "alert": logger.warning,
    }.get(notification_type, logger.info)

    log_method(
        f"NOTIFY [{notification_type.upper()}] {message}",
        extra={
            "notification_type": notification_type,
            "push_type": push_type,
        },
    )


def log_transition(
    logger: logging.Logger | logging.LoggerAdapter,
    domain: str,
    previous: Any,
    current: Any,
) -> None:
    """Log a sensor state change found by edge detection"""
    shown = "unknown" if previous is None else previous
    logger.info(
        f"{domain} state {shown} → {current}",
        extra={"domain": domain, "previous": previous, "current": current},
    )
