from __future__ import annotations

import json
import logging
import queue

from crud_api.logging_config import (
    ConsoleFormatter,
    DroppingQueueHandler,
    configure_logging,
    shutdown_logging,
)

from .helpers import make_settings


def _read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_records_land_in_the_json_lines_sink(tmp_path) -> None:
    settings = make_settings(tmp_path, LOG_DIR=str(tmp_path / "nested" / "logs"))
    logger = configure_logging(settings)
    try:
        logging.getLogger("crud_api.users.routes").info(
            "User created", extra={"context": {"endpoint": "/api/users", "method": "POST"}, "processing_time_ms": 4.2}
        )
    finally:
        shutdown_logging()

    records = _read_lines(settings.log_file)
    assert logger.name == "crud_api"
    assert len(records) == 1
    record = records[0]
    assert record["message"] == "User created"
    assert record["level"] == "INFO"
    assert record["context"] == {"endpoint": "/api/users", "method": "POST"}
    assert record["processing_time_ms"] == 4.2
    assert "timestamp" in record


def test_sink_appends_across_restarts(tmp_path) -> None:
    settings = make_settings(tmp_path)
    for message in ("first", "second"):
        configure_logging(settings)
        logging.getLogger("crud_api").warning(message)
        shutdown_logging()

    assert [record["message"] for record in _read_lines(settings.log_file)] == ["first", "second"]


def test_unusable_log_directory_falls_back_to_console(tmp_path, capsys) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    settings = make_settings(tmp_path, LOG_DIR=str(blocker / "logs"))

    logger = configure_logging(settings)
    try:
        logger.info("still logging")
    finally:
        shutdown_logging()

    out = capsys.readouterr().out
    assert "Log file unavailable" in out
    assert "[INFO] still logging" in out


def test_configure_logging_replaces_previous_handlers(tmp_path) -> None:
    settings = make_settings(tmp_path)
    configure_logging(settings)
    logger = configure_logging(settings)
    try:
        assert len(logger.handlers) == 2
    finally:
        shutdown_logging()

    assert logger.handlers == []


def test_full_queue_drops_instead_of_blocking() -> None:
    handler = DroppingQueueHandler(queue.Queue(maxsize=1))
    record = logging.LogRecord("crud_api", logging.INFO, __file__, 1, "message", None, None)

    handler.emit(record)
    handler.emit(record)

    assert handler.queue.qsize() == 1
    assert handler.dropped == 1


def test_console_format_includes_context_and_timing() -> None:
    record = logging.LogRecord("crud_api", logging.WARNING, __file__, 1, "User not found", None, None)
    record.context = {"id": "abc", "status": 404}
    record.processing_time_ms = 1.5

    line = ConsoleFormatter().format(record)

    assert line == '[WARNING] User not found {"id": "abc", "status": 404} (1.5ms)'
