"""
Logging for the incentives engine.

Call sites pass context as keyword arguments; the console gets a readable
line and the optional log file gets one JSON object per record, which is
what the audit trail (card completions, payouts, redemptions) relies on.
"""
import logging
import logging.config
import json
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional
from pathlib import Path

ROOT_LOGGER_NAME = "incentives"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return repr(value)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(getattr(record, "context", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=_encode)


class ContextFormatter(logging.Formatter):
    """Plain console format with the keyword context appended as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            pairs = (f"{k}={v if isinstance(v, (str, int, float)) else _encode(v)}" for k, v in context.items())
            line += " | " + " ".join(pairs)
        return line


class StructuredLogger:
    """
    Keyword-context wrapper over a stdlib logger::

        logger.info("Card completed", seller_id=7, card_number=3)

    ``None`` values are dropped; ``exc_info`` is passed through.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, exc_info: bool = False, **context):
        if not self.logger.isEnabledFor(level):
            return
        context = {k: v for k, v in context.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra={"context": context}, stacklevel=3)

    def debug(self, message: str, **context):
        self._emit(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._emit(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._emit(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self._emit(logging.ERROR, message, **context)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure the ``incentives`` logger tree plus uvicorn and SQLAlchemy.

    Args:
        log_level: threshold for the engine's own loggers
        log_file: optional path for rotating JSON records
        enable_console: readable stdout output
    """
    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "console",
        }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
            "encoding": "utf-8",
            "formatter": "json",
        }
    names = list(handlers)

    def tree(level: str) -> Dict[str, Any]:
        return {"level": level, "handlers": names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "console": {
                "()": ContextFormatter,
                "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            ROOT_LOGGER_NAME: tree(log_level),
            "uvicorn": tree("INFO"),
            "sqlalchemy.engine": tree("WARNING"),
        },
        "root": {"level": "WARNING", "handlers": names},
    })


def get_logger(name: str) -> StructuredLogger:
    """Logger under the ``incentives.`` namespace, whatever module name is passed."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return StructuredLogger(name)
    return StructuredLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    user_id: Optional[int] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Audit record on the ``incentives.audit`` logger.

    Args:
        event_type: e.g. 'card_completed', 'redemption_requested', 'ledger_paid'
        details: event payload, flattened into the record
        user_id: acting or affected user
        request_id: request correlation id
    """
    get_logger("audit").info(
        event_type,
        event_type=event_type,
        user_id=user_id,
        request_id=request_id,
        **details
    )


def log_performance(operation: str, duration_ms: float, additional_data: Optional[Dict[str, Any]] = None) -> None:
    get_logger("performance").info(
        operation,
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **(additional_data or {})
    )
