"""
Logging Configuration for the field recalculation engine.

Provides structured logging with:
- JSON formatting for production
- Human-readable formatting for development
- Recalculation-specific logging with write counts and timing
"""

import logging
import json
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Context variables for per-return correlation
return_id_var: ContextVar[Optional[str]] = ContextVar('return_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)


def _context_fields() -> Dict[str, str]:
    fields = {}
    return_id = return_id_var.get()
    if return_id:
        fields["return_id"] = return_id
    user_id = user_id_var.get()
    if user_id:
        fields["user_id"] = user_id
    return fields


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    One JSON object per line, for log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(_context_fields())

        extra_data = getattr(record, 'extra_data', None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            level = f"{color}{level}{self.COLORS['RESET']}"

        timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        message = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        extras = dict(_context_fields())
        extras.update(getattr(record, 'extra_data', None) or {})
        if extras:
            message += " | " + ' | '.join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges fixed context into every record's extra_data."""

    def process(self, msg: str, kwargs: Dict) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        extra_data = dict(self.extra)
        extra_data.update(extra.get('extra_data') or {})
        extra['extra_data'] = extra_data
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON formatted logs
        log_file: Optional file path for log output (always JSON)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = JsonFormatter() if json_output else ReadableFormatter(use_color=sys.stdout.isatty())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    # Set levels for noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def configure_from_settings(settings=None) -> None:
    """Configure logging from application settings."""
    from config.settings import get_settings

    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)


def get_logger(name: str, **extra) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__)
        **extra: Additional context to include in all logs
    """
    return ContextLogger(logging.getLogger(name), extra)


class RecalculationLogger:
    """
    Specialized logger for one recalculation run.

    Tracks:
    - Run start (tax year, field count)
    - Fields written and fields skipped because of overrides
    - Final refund, liability and diagnostic counts with timing
    """

    def __init__(self, return_id: str):
        self.logger = get_logger("recalculation", return_id=return_id)
        self.return_id = return_id
        self._start_time: Optional[float] = None
        self.fields_written = 0
        self.fields_skipped_override = 0
        self.fields_missing = 0

    def start(self, tax_year: int, field_count: int) -> None:
        self._start_time = time.perf_counter()
        self.logger.info(
            "Starting recalculation",
            extra={'extra_data': {
                'tax_year': tax_year,
                'field_count': field_count,
            }}
        )

    def field_written(self, key: str, value: Any) -> None:
        self.fields_written += 1
        self.logger.debug(
            f"Calculated field written: {key}",
            extra={'extra_data': {'field': key, 'value': value}}
        )

    def override_skipped(self, key: str) -> None:
        self.fields_skipped_override += 1
        self.logger.debug(
            f"Skipping overridden field: {key}",
            extra={'extra_data': {'field': key}}
        )

    def field_missing(self, key: str) -> None:
        self.fields_missing += 1
        self.logger.debug(
            f"Calculated field not present on return: {key}",
            extra={'extra_data': {'field': key}}
        )

    @property
    def elapsed_ms(self) -> float:
        if self._start_time is None:
            return 0.0
        return round((time.perf_counter() - self._start_time) * 1000, 3)

    def result(self, refund: Any, tax_liability: Any, error_count: int, warning_count: int) -> None:
        self.logger.info(
            "Recalculation complete",
            extra={'extra_data': {
                'refund': refund,
                'tax_liability': tax_liability,
                'error_count': error_count,
                'warning_count': warning_count,
                'fields_written': self.fields_written,
                'fields_skipped_override': self.fields_skipped_override,
                'fields_missing': self.fields_missing,
                'duration_ms': self.elapsed_ms,
            }}
        )
