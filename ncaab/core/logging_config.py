#!/usr/bin/env python3
"""
Logging for the Latent Team System
==================================

One console handler (text or JSON) and one rotating JSON-lines file per
entry point. Fields passed via ``extra={...}`` (entity ids, iterations,
losses) are kept as structured keys in both formats.

Usage:
    from ncaab.core.logging_config import get_logger, setup_logging

    # In main():
    setup_logging('online_update')

    # In modules:
    logger = get_logger(__name__)
    logger.info("Posterior updated", extra={"entity_id": "150", "avg_change": 0.012})

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    LOG_DIR: Override default log directory
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 7

# Storage and tracking dependencies; alembic runs MLflow's SQLite migrations
QUIET_LIBRARIES = ("psycopg2", "mlflow", "alembic", "urllib3")

# LogRecord attributes that are not user-supplied extra fields
RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in RESERVED_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record:
    {"timestamp", "level", "logger", "message", "module", "function", "line",
     "extra": {...}, "exception": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_dict: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extra = {}
        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)
        if extra:
            log_dict["extra"] = extra

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


class ConsoleFormatter(logging.Formatter):
    """TIMESTAMP - LEVEL - MESSAGE [key=value, ...]"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level_str = f"{self.COLORS[level]}{level:8}{self.RESET}"
        else:
            level_str = f"{level:8}"

        log_line = f"{timestamp} - {level_str} - {record.getMessage()}"

        extra = [f"{key}={value}" for key, value in _extra_fields(record).items()]
        if extra:
            log_line += f" [{', '.join(extra)}]"

        if record.exc_info:
            log_line += f"\n{self.formatException(record.exc_info)}"

        return log_line


def get_log_level() -> int:
    """Get log level from LOG_LEVEL environment variable."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_name, logging.INFO)


def setup_logging(
    log_name: str = "ncaab_latent",
    level: Optional[int] = None,
    log_dir: Optional[str] = None,
    console_format: str = "text",
    file_format: str = "json",
    quiet: bool = False,
) -> logging.Logger:
    """
    Configure the root logger with a console and a rotating file handler.

    Args:
        log_name: Base name for the log file (e.g., 'online_update')
        level: Logging level (default: LOG_LEVEL env var or INFO)
        log_dir: Directory for log files (default: LOG_DIR env var or ncaab/logs/)
        console_format: 'text' or 'json'
        file_format: 'text' or 'json'
        quiet: If True, only WARNING+ reaches the console

    Returns:
        Configured root logger
    """
    if level is None:
        level = get_log_level()

    if log_dir is None:
        log_dir = os.environ.get("LOG_DIR") or str(Path(__file__).parent.parent / "logs")

    logs_path = Path(log_dir)
    logs_path.mkdir(parents=True, exist_ok=True)
    log_file = logs_path / f"{log_name}_{datetime.now().strftime('%Y-%m-%d')}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING if quiet else level)
    if console_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter(use_colors=True))
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_file,
        mode="a",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
    )
    file_handler.setLevel(level)
    if file_format == "json":
        file_handler.setFormatter(JSONFormatter())
    else:
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    root_logger.addHandler(file_handler)

    for lib in QUIET_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging initialized",
        extra={
            "log_name": log_name,
            "level": logging.getLevelName(level),
            "log_file": str(log_file),
        },
    )

    return root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a module logger. Call setup_logging() once in main() first.

    Example:
        logger = get_logger(__name__)
        logger.info("Feedback triggered", extra={"iteration": 42, "loss": 0.71})
    """
    return logging.getLogger(name)


def add_logging_args(parser) -> None:
    """
    Add --debug / --quiet / --log-json to an argparse parser.

    Example:
        parser = argparse.ArgumentParser()
        add_logging_args(parser)
        args = parser.parse_args()
        setup_logging('state_check', level=logging.DEBUG if args.debug else None, quiet=args.quiet)
    """
    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (DEBUG level logging)",
    )
    logging_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode (only show warnings and errors on console)",
    )
    logging_group.add_argument(
        "--log-json",
        action="store_true",
        help="Output JSON format to console (default: human-readable text)",
    )
