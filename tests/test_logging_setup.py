# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for logging setup."""

import json
import logging
import sys
import tempfile
from pathlib import Path

import pytest

from lockprune.logging_setup import StructuredFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def _read_entries(log_dir):
    log_files = list(log_dir.glob("*.log"))
    assert len(log_files) == 1
    log_content = log_files[0].read_text()
    return [json.loads(line) for line in log_content.strip().split("\n") if line]


def test_setup_logging_creates_directory():
    """Test that setup_logging creates the log directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"
        assert not log_dir.exists()

        setup_logging(log_dir=log_dir, console_output=False)

        assert log_dir.is_dir()


def test_setup_logging_returns_log_file():
    """Test that setup_logging creates and returns a dated log file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        log_file = setup_logging(log_dir=log_dir, console_output=False)

        assert log_file.exists()
        assert log_file.parent == log_dir
        assert log_file.name.startswith("lockprune_")
        assert log_file.suffix == ".log"


def test_logging_produces_json():
    """Test that logs are written in JSON format."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        setup_logging(log_dir=log_dir, log_level=logging.INFO, console_output=False)
        logging.getLogger("test_logger").info("Test message")

        entries = _read_entries(log_dir)
        # Startup message + test message
        assert len(entries) >= 2
        for entry in entries:
            assert {"timestamp", "level", "logger", "message"} <= set(entry)
        assert entries[-1]["message"] == "Test message"
        assert entries[-1]["logger"] == "test_logger"


def test_extra_fields_are_merged():
    """Test that extra_fields end up as top-level JSON keys."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        setup_logging(log_dir=log_dir, console_output=False)
        logging.getLogger("lockprune.codec").warning(
            "Block 3 has no name line",
            extra={"extra_fields": {"anomaly": "missing_name", "record_index": 3}},
        )

        entry = _read_entries(log_dir)[-1]
        assert entry["anomaly"] == "missing_name"
        assert entry["record_index"] == 3


def test_logging_levels():
    """Test that different log levels work correctly."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        setup_logging(log_dir=log_dir, log_level=logging.WARNING, console_output=False)

        logger = logging.getLogger("test_logger")
        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")

        messages = [entry["message"] for entry in _read_entries(log_dir)]
        assert "Warning message" in messages
        assert "Error message" in messages
        assert "Debug message" not in messages
        assert "Info message" not in messages


def test_structured_formatter_with_exception():
    """Test that exceptions are formatted correctly."""
    formatter = StructuredFormatter()

    try:
        raise ValueError("Test exception")
    except ValueError:
        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="An error occurred",
            args=(),
            exc_info=sys.exc_info(),
        )

    log_entry = json.loads(formatter.format(record))

    assert log_entry["level"] == "ERROR"
    assert log_entry["message"] == "An error occurred"
    assert "ValueError: Test exception" in log_entry["exception"]


def test_setup_logging_clears_existing_handlers():
    """Test that setup_logging clears existing handlers."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        setup_logging(log_dir=log_dir, console_output=False)
        initial_handler_count = len(logging.getLogger().handlers)

        setup_logging(log_dir=log_dir, console_output=False)
        final_handler_count = len(logging.getLogger().handlers)

        assert final_handler_count == initial_handler_count


def test_console_output_option():
    """Test that console output goes to stderr and can be disabled."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".lockprune_logs"

        setup_logging(log_dir=log_dir, console_output=True)
        handlers = logging.getLogger().handlers
        assert len(handlers) == 2  # File + Console
        stream_handlers = [h for h in handlers if not isinstance(h, logging.FileHandler)]
        assert stream_handlers[0].stream is sys.stderr

        setup_logging(log_dir=log_dir, console_output=False)
        assert len(logging.getLogger().handlers) == 1  # File only
