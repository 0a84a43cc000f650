"""
Structured logging configuration.

Console output is human-readable, ``app.log`` and ``error.log`` hold one JSON
object per line. Records logged through ``get_logger`` (or with ``extra``)
carry watch-pipeline context such as the watcher id and marketplace, which
both formats surface as first-class fields.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from peddler import __version__
from peddler.config import settings

# Pipeline context keys, in output order
CONTEXT_FIELDS = ("watcher_id", "marketplace", "item_id", "event_id", "channel")

# Always present in JSON output so log queries can filter on them
ALWAYS_PRESENT = ("watcher_id", "marketplace")

QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "aiosqlite")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class PipelineJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with service, source location and pipeline context fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = "peddler"
        log_record["version"] = __version__
        log_record["source"] = f"{record.filename}:{record.lineno}"

        for key in ALWAYS_PRESENT:
            log_record[key] = getattr(record, key, None)
        log_record.update(_context(record))


class ConsoleFormatter(logging.Formatter):
    """Plain text lines ending in the record's pipeline context, if any."""

    def formatMessage(self, record):
        line = super().formatMessage(record)
        context = _context(record)
        if not context:
            return line
        return line + " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"


def _json_file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(PipelineJsonFormatter("%(timestamp)s %(level)s %(message)s"))
    return handler


def setup_logging(base_dir: str | Path | None = None, level: str | None = None):
    """Configure logging for the application.

    Args:
        base_dir: Optional base directory to place the log folder in.
                  If omitted, uses the current working directory.
        level: Root log level name, defaults to settings.log_level
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / settings.log_dir
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_json_file_handler(logs_dir / "app.log", logging.DEBUG))
    root_logger.addHandler(_json_file_handler(logs_dir / "error.log", logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class WatcherLoggerAdapter(logging.LoggerAdapter):
    """Adds bound watcher context to every record. Call-site ``extra`` wins."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> WatcherLoggerAdapter:
    """
    Get a logger with bound context fields.

    Args:
        name: Logger name (usually __name__)
        **context: Context fields (e.g., watcher_id='bikes', marketplace='facebook')

    Returns:
        WatcherLoggerAdapter with context
    """
    return WatcherLoggerAdapter(logging.getLogger(name), context)
