"""Structured logging: a JSON-lines file sink plus a readable console mirror.

Callers log through the standard library and attach structured data with
``extra={"context": {...}, "processing_time_ms": 12.5}``. The file sink is
fed through a bounded queue drained by a background thread, so a slow or
broken disk never holds up a request; when the queue is full the record is
dropped for that sink only.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import queue
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from .config import Settings

_listener: Optional[logging.handlers.QueueListener] = None
_installed: list = []


class ConsoleFormatter(logging.Formatter):
    """`[LEVEL] message {"key": "value"}` for humans tailing stdout."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"[{record.levelname}] {record.getMessage()}"
        context = getattr(record, "context", None)
        if context:
            line = f"{line} {json.dumps(context, default=str)}"
        elapsed = getattr(record, "processing_time_ms", None)
        if elapsed is not None:
            line = f"{line} ({elapsed}ms)"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class DroppingQueueHandler(logging.handlers.QueueHandler):
    """QueueHandler that drops records instead of blocking or erroring when full."""

    def __init__(self, log_queue: queue.Queue) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


def _json_formatter() -> jsonlogger.JsonFormatter:
    return jsonlogger.JsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level"},
        timestamp=True,
        json_default=str,
    )


def _file_handler(settings: Settings) -> logging.Handler:
    path = settings.log_file
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(_json_formatter())
    return handler


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the console and file handlers on the service logger.

    Safe to call more than once; handlers from a previous call are removed
    and the previous queue listener is stopped first.
    """
    global _listener

    shutdown_logging()

    logger = logging.getLogger("crud_api")
    logger.setLevel(settings.LOG_LEVEL)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())
    logger.addHandler(console)
    _installed.append(console)

    try:
        sink = _file_handler(settings)
    except OSError as exc:
        logger.warning(
            "Log file unavailable, logging to console only",
            extra={"context": {"path": str(settings.log_file), "error": str(exc)}},
        )
        return logger

    queue_handler = DroppingQueueHandler(queue.Queue(maxsize=settings.LOG_QUEUE_SIZE))
    logger.addHandler(queue_handler)
    _installed.append(queue_handler)

    _listener = logging.handlers.QueueListener(queue_handler.queue, sink, respect_handler_level=True)
    _listener.start()
    return logger


def shutdown_logging() -> None:
    """Flush the file sink and detach every handler installed by `configure_logging`."""
    global _listener

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    logger = logging.getLogger("crud_api")
    while _installed:
        handler = _installed.pop()
        logger.removeHandler(handler)


__all__ = ["configure_logging", "shutdown_logging", "ConsoleFormatter", "DroppingQueueHandler"]
