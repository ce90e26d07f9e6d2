"""
JSON line logging for the legal search client.

Every record goes to logs/app.log as one JSON object; errors are also copied
to logs/error.log. Call sites attach structured context with
``extra={"extra_fields": {...}}``.

Environment:
    LOG_DIR: Directory for log files (default: logs)
    LOG_LEVEL: Root level, e.g. DEBUG to also write logs/debug.log
    LOG_TO_CONSOLE: "true" to echo errors to stderr
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_CONSOLE = os.getenv("LOG_TO_CONSOLE", "false").lower() == "true"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

# Loggers that would otherwise write request URLs, OC key included
QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object, merging its extra_fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", {}))

        # Korean titles stay readable in the files
        return json.dumps(entry, ensure_ascii=False, default=str)


def _file_handler(filename: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """Install the file and console handlers on the root logger. Runs once."""
    global _configured
    if _configured:
        return

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    formatter = JsonFormatter()

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root.handlers.clear()
    root.addHandler(_file_handler("app.log", logging.INFO, formatter))
    root.addHandler(_file_handler("error.log", logging.ERROR, formatter))
    if LOG_LEVEL == "DEBUG":
        root.addHandler(_file_handler("debug.log", logging.DEBUG, formatter))

    if LOG_TO_CONSOLE:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.ERROR)
        console.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(console)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "extra_fields": {
                "log_level": LOG_LEVEL,
                "log_dir": str(LOG_DIR),
                "console_logging": LOG_TO_CONSOLE,
            }
        },
    )


def get_logger(name: str) -> logging.Logger:
    """
    Return the named logger, configuring logging on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Source failed", extra={"extra_fields": {"source": "statute"}})
    """
    setup_logging()
    return logging.getLogger(name)
