"""
Structured logging configuration with correlation tracking.

Provides JSON log output and a correlation id that follows one scheduler tick
(or one celery task) through every module it touches, so operators can group
the log lines of a single run.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from .config import settings


@dataclass
class LogEntry:
    """Structured log entry"""
    timestamp: str
    level: str
    logger_name: str
    message: str
    correlation_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    duration_ms: Optional[float] = None
    extra: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        result = asdict(self)
        # Remove None values to reduce log size
        return {k: v for k, v in result.items() if v is not None}


class CorrelationContext:
    """Task-local correlation context (safe across asyncio tasks)"""

    def __init__(self):
        self._correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

    def set_correlation_id(self, correlation_id: Optional[str]):
        """Set correlation ID for the current context"""
        self._correlation_id.set(correlation_id)

    def get_correlation_id(self) -> Optional[str]:
        """Get correlation ID for the current context"""
        return self._correlation_id.get()

    def new_correlation_id(self, prefix: str) -> str:
        """Generate, set and return a short correlation ID"""
        correlation_id = f"{prefix}-{uuid.uuid4().hex[:8]}"
        self.set_correlation_id(correlation_id)
        return correlation_id

    def clear(self):
        self._correlation_id.set(None)


correlation_context = CorrelationContext()

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'message', 'taskName', 'correlation_id'
}


class CorrelationFilter(logging.Filter):
    """Attach the current correlation id to every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_context.get_correlation_id() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        extra = {}
        if self.include_extra:
            extra = {
                key: value for key, value in record.__dict__.items()
                if key not in _RESERVED_ATTRS
            }

        # Handle exception info
        if record.exc_info and record.exc_info[0] is not None:
            extra['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            correlation_id=correlation_context.get_correlation_id(),
            component=extra.pop('component', None),
            operation=extra.pop('operation', None),
            duration_ms=extra.pop('duration_ms', None),
            extra=extra if extra else None
        )

        return json.dumps(log_entry.to_dict(), ensure_ascii=False, default=str)


_configured = False


def setup_logging(log_level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure the root logger once per process"""
    global _configured
    if _configured:
        return

    level = (log_level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationFilter())
    if use_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s"
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Quiet chatty dependencies
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info("Logging system initialized (level=%s, json=%s)", level, use_json)


def set_correlation_id(correlation_id: Optional[str]):
    """Set correlation ID for the current context"""
    correlation_context.set_correlation_id(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID for the current context"""
    return correlation_context.get_correlation_id()
