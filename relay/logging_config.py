"""Structured logging configuration for the relay service."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Third-party loggers that flood INFO with per-request lines
QUIET_LOGGERS = ("discord", "httpx", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        # Set by callers via extra={"conversation": key}
        conversation = getattr(record, "conversation", None)
        if conversation:
            log_data["conversation"] = conversation

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Short human-readable lines: time, level, logger, [conversation] message."""

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        conversation = getattr(record, "conversation", None)
        prefix = f"[{conversation}] " if conversation else ""
        line = (
            f"{self.formatTime(record, self.datefmt)} {record.levelname:<7} "
            f"{record.name}: {prefix}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_logging_config(log_level: str, log_file: str, console_format: str) -> dict:
    """dictConfig for a JSON log file plus a stdout handler."""
    if console_format not in ("json", "text"):
        raise ValueError(f"Unknown console log format: {console_format}")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "relay.logging_config.JSONFormatter"},
            "text": {"()": "relay.logging_config.ConsoleFormatter"},
        },
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": log_file,
                "maxBytes": 10 * 1024 * 1024,  # 10 MB
                "backupCount": 5,
                "formatter": "json",
                "encoding": "utf-8",
            },
            "console": {
                "class": "logging.StreamHandler",
                "formatter": console_format,
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": log_level.upper(),
            "handlers": ["file", "console"],
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    }


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console_format: str | None = None,
) -> None:
    """
    Setup structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   Defaults to LOG_LEVEL env var or INFO.
        log_file: Path to log file. Defaults to LOG_FILE or logs/relay.log.
        console_format: "text" or "json" for stdout. Defaults to LOG_FORMAT or text.
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_file = log_file or os.getenv("LOG_FILE") or str(DEFAULT_LOG_PATH)
    console_format = console_format or os.getenv("LOG_FORMAT", "text").lower()

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_level, log_file, console_format))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (pass the module's __name__)."""
    return logging.getLogger(name)
