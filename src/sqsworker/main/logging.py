import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler

from sqsworker.main.config import get_loglevel
from sqsworker.main.message_context import get_message_context


JSON_LOGS_ENABLED = os.getenv("JSON_LOGS", "true").lower() in {"1", "true", "yes", "on"}


class ContextJSONFormatter(logging.Formatter):
    """Serialize log records with message context into JSON."""

    RESERVED_ATTRS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    }

    DEFAULT_KEYS = ("message_id", "queue", "worker_pid")

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting logic
        log: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }

        # Attach message context values (message id, worker pid)
        for key, value in get_message_context().items():
            if value is not None and key not in log:
                log[key] = value

        # Include extra attributes passed via logger(..., extra={})
        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith("_"):
                continue
            if value is None:
                continue
            log.setdefault(key, value)

        for key in self.DEFAULT_KEYS:
            if key not in log and getattr(record, key, None) is not None:
                log[key] = getattr(record, key)

        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log["stack"] = record.stack_info

        return json.dumps(log, default=str)


# AWS SDK and HTTP plumbing are chatty below WARNING
for logger_name in ("botocore", "boto3", "urllib3", "s3transfer"):
    logging.getLogger(logger_name).setLevel(logging.WARNING)


class SimpleLogger(logging.Logger):
    FORMAT_STRING = '%(asctime)s | %(levelname)s | %(process)d | %(name)s : %(message)s'

    def __init__(
        self,
        name="main",
        fmt_string=FORMAT_STRING,
        level=logging.WARNING,
        console=True,
        files=None,
    ):
        logging.Logger.__init__(self, name, level)
        self._fmt_string = fmt_string

        if files is None:
            files = []
        elif isinstance(files, str):
            files = [files]

        if console is True:
            if JSON_LOGS_ENABLED:
                self._add_stream(logging.StreamHandler, stream=sys.stderr)
            else:
                rich_handler = RichHandler(rich_tracebacks=True, markup=False, show_path=True)
                rich_handler.setLevel(level)
                self.addHandler(rich_handler)

        for filepath in files:
            self.add_file(filepath)

    def _formatter(self) -> logging.Formatter:
        if JSON_LOGS_ENABLED:
            return ContextJSONFormatter()
        return logging.Formatter(self._fmt_string)

    def _add_stream(self, handler_cls, **kwargs) -> logging.Handler:
        handler = handler_cls(**kwargs)
        handler.setLevel(self.level)
        handler.setFormatter(self._formatter())
        self.addHandler(handler)
        return handler

    def add_file(self, filepath: str) -> None:
        for handler in self.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(filepath):
                return
        self._add_stream(logging.FileHandler, filename=filepath)

    def apply_level(self, level: int) -> None:
        self.setLevel(level)
        for handler in self.handlers:
            handler.setLevel(level)


_loggers: dict[str, SimpleLogger] = {}
_level: int | None = None
_files: list[str] = []


def get_logger(module_name: str) -> SimpleLogger:
    logger = _loggers.get(module_name)
    if logger is None:
        logger = SimpleLogger(
            name=module_name,
            level=_level if _level is not None else get_loglevel(),
            files=list(_files),
        )
        _loggers[module_name] = logger
    return logger


def configure_logging(level: str | None = None, log_path: str | None = None) -> None:
    """Apply level and optional log file to every logger, current and future.

    Args:
        level: Level name (``debug``, ``info``...). Falls back to LOGLEVEL.
        log_path: File that receives a copy of all records.
    """
    global _level
    _level = get_loglevel(level)
    if log_path and log_path not in _files:
        _files.append(log_path)

    for logger in _loggers.values():
        logger.apply_level(_level)
        for filepath in _files:
            logger.add_file(filepath)
