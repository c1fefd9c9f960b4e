"""
Logging configuration for the Speaker Store

Store backends log through the stdlib 'speaker_store' logger. The console
gets colored level names; an optional log file receives one JSON object per
line. pymongo's own loggers stay at WARNING outside of debug runs.
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Optional


_CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'taskName'}


class StructuredFormatter(logging.Formatter):
    """Render a record, plus its extra= fields, as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        plain = record.levelname
        color = self.COLORS.get(plain)
        if color:
            record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the 'speaker_store' logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path that receives JSON lines

    Returns:
        The configured 'speaker_store' logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    store_logger = logging.getLogger('speaker_store')
    for handler in store_logger.handlers[:]:
        store_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredConsoleFormatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    store_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        store_logger.addHandler(file_handler)

    store_logger.setLevel(numeric_level)
    store_logger.propagate = False

    configure_pymongo_loggers(numeric_level)
    return store_logger


def configure_pymongo_loggers(level: int) -> None:
    """Keep pymongo at WARNING unless running at debug level."""
    for logger_name in ('pymongo', 'pymongo.command', 'pymongo.connection', 'pymongo.serverSelection'):
        logging.getLogger(logger_name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
