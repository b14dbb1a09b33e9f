# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for logging setup."""

import json
import logging
import sys
import tempfile
from pathlib import Path

import pytest

from fixture_lair.config import Config
from fixture_lair.factory import Factory, field
from fixture_lair.logging_setup import StructuredFormatter, setup_logging
from fixture_lair.store import RecordStore


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def test_setup_logging_creates_directory():
    """Test that setup_logging creates the log directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"
        assert not log_dir.exists()

        setup_logging(log_dir=log_dir, console_output=False)

        assert log_dir.exists()
        assert log_dir.is_dir()


def test_setup_logging_returns_log_file():
    """Test that setup_logging creates and returns a single log file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"

        log_file = setup_logging(log_dir=log_dir, console_output=False)

        log_files = list(log_dir.glob("*.log"))
        assert log_files == [log_file]
        assert log_file.name.startswith("fixture_lair_")


def test_logging_produces_json():
    """Test that logs are written in JSON format."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"

        log_file = setup_logging(log_dir=log_dir, log_level=logging.INFO, console_output=False)

        logger = logging.getLogger("test_logger")
        logger.info("Test message")

        log_lines = [line for line in log_file.read_text().strip().split("\n") if line]

        # Startup message + test message
        assert len(log_lines) >= 2

        for line in log_lines:
            log_entry = json.loads(line)
            assert "timestamp" in log_entry
            assert "level" in log_entry
            assert "logger" in log_entry
            assert "message" in log_entry


def test_logging_levels():
    """Test that different log levels work correctly."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"

        log_file = setup_logging(log_dir=log_dir, log_level=logging.WARNING, console_output=False)

        logger = logging.getLogger("test_logger")
        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")

        log_lines = [line for line in log_file.read_text().strip().split("\n") if line]
        messages = [json.loads(line)["message"] for line in log_lines]

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


def test_structured_formatter_extra_fields():
    """Test that extra_fields are merged into the JSON entry."""
    formatter = StructuredFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="Created",
        args=(),
        exc_info=None,
    )
    record.extra_fields = {"type": "host", "count": 3}

    log_entry = json.loads(formatter.format(record))

    assert log_entry["type"] == "host"
    assert log_entry["count"] == 3
    assert log_entry["timestamp"].endswith("Z")


def test_setup_logging_clears_existing_handlers():
    """Test that setup_logging clears existing handlers."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"

        setup_logging(log_dir=log_dir, console_output=False)
        initial_handler_count = len(logging.getLogger().handlers)

        setup_logging(log_dir=log_dir, console_output=False)
        final_handler_count = len(logging.getLogger().handlers)

        assert final_handler_count == initial_handler_count


def test_console_output_option():
    """Test that console output can be enabled/disabled."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"

        setup_logging(log_dir=log_dir, console_output=True)
        assert len(logging.getLogger().handlers) == 2  # File + Console

        setup_logging(log_dir=log_dir, console_output=False)
        assert len(logging.getLogger().handlers) == 1  # File only


def test_store_operations_logged_to_file():
    """Test that store registration and verbose timings reach the JSON log."""

    class UserFactory(Factory):
        factory_name = "user"
        name = field("Jane")

    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"
        log_file = setup_logging(log_dir=log_dir, console_output=False)

        store = RecordStore(Config(config_path=Path(tmpdir) / "missing.yml", verbose=True))
        store.register_type(UserFactory)
        store.get_all("user")

        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        messages = [entry["message"] for entry in entries]
        assert any("Registered type 'user'" in message for message in messages)
        assert "Result: 0 item(s)" in messages

        timings = [entry for entry in entries if entry["message"].startswith("get_all (args - [")]
        assert len(timings) == 1
        assert timings[0]["operation"] == "get_all"
        assert timings[0]["elapsed_ms"] >= 0


def test_level_from_config():
    """Test verbose configs default to DEBUG and an explicit level wins."""
    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / ".fixture_lair_logs"
        quiet = Config(config_path=Path(tmpdir) / "missing.yml")
        loud = Config(config_path=Path(tmpdir) / "missing.yml", verbose=True)

        setup_logging(log_dir=log_dir, console_output=False, config=quiet)
        assert logging.getLogger().level == logging.INFO

        setup_logging(log_dir=log_dir, console_output=False, config=loud)
        assert logging.getLogger().level == logging.DEBUG

        setup_logging(
            log_dir=log_dir, log_level=logging.ERROR, console_output=False, config=loud
        )
        assert logging.getLogger().level == logging.ERROR
