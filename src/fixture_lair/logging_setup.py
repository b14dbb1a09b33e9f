# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for fixture generation runs.

Store operations log through the ``fixture_lair.*`` loggers. ``setup_logging``
routes them to a JSON-lines file, one file per UTC day, so a test session can
be inspected afterwards (which types were registered, how many records were
generated, how long verbose operations took).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fixture_lair.config import Config

LOG_DIR_NAME = ".fixture_lair_logs"
LOG_FILE_PREFIX = "fixture_lair_"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    ``extra_fields`` passed through ``extra=`` (the ``verbose`` decorator sends
    ``operation`` and ``elapsed_ms``) are merged into the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)

        return json.dumps(entry, default=str)


def _resolve_level(log_level: Optional[int], config: Optional[Config]) -> int:
    if log_level is not None:
        return log_level
    if config is not None and config.verbose:
        return logging.DEBUG
    return logging.INFO


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: Optional[int] = None,
    console_output: bool = True,
    config: Optional[Config] = None,
) -> Path:
    """Configure the root logger for a fixture generation run.

    Args:
        log_dir: Directory for log files. If None, uses .fixture_lair_logs/
            in the working directory.
        log_level: Logging level. If None, DEBUG when ``config.verbose`` is
            on, INFO otherwise.
        console_output: Whether to also output to console (default: True)
        config: Store configuration used to pick the default level.

    Returns:
        Path of the JSON-lines log file.
    """
    if log_dir is None:
        log_dir = Path.cwd() / LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    level = _resolve_level(log_level, config)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    log_file = log_dir / f"{LOG_FILE_PREFIX}{day}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%H:%M:%S")
        )
        root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info(
        f"Logging initialized. Log file: {log_file} (level {logging.getLevelName(level)})"
    )
    return log_file
