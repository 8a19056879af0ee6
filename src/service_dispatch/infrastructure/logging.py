"""Structured JSON logging for the Service Dispatch core."""

import logging
import json
import os
import sys
import uuid
from datetime import datetime
from typing import Any, Optional
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path


# Follows one booking request or one retry loop across log lines and notifications
correlation_id_context: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Promoted to the top level of each entry so log searches can filter on them
BOOKING_FIELDS = ('booking_id', 'booking_number', 'agent_id')

_RESERVED_RECORD_FIELDS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'message', 'exc_info',
    'exc_text', 'stack_info', 'correlation_id', 'taskName'
})

_QUIET_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool', 'asyncpg', 'httpx', 'httpcore')


class CorrelationIDFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_context.get() or "unknown"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with booking identifiers at the top level."""

    def __init__(self, service_name: str = "service-dispatch"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', 'unknown'),
        }

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS:
                continue
            if key in BOOKING_FIELDS:
                log_entry[key] = value
            else:
                extra_fields[key] = value
        if extra_fields:
            log_entry["extra"] = extra_fields

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class LoggingConfig:
    """Root logger setup for the dispatch service and its scripts."""

    def __init__(self,
                 log_level: str = "INFO",
                 service_name: str = "service-dispatch",
                 log_dir: Optional[str] = None,
                 max_file_size: int = 10 * 1024 * 1024,
                 backup_count: int = 5,
                 enable_console: bool = True,
                 enable_file: bool = False):
        self.log_level = getattr(logging, log_level.upper())
        self.service_name = service_name
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_file = enable_file

    def setup_logging(self) -> None:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        root_logger.setLevel(self.log_level)

        handlers = []
        if self.enable_console:
            handlers.append(logging.StreamHandler(sys.stdout))
        if self.enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(RotatingFileHandler(
                filename=self.log_dir / f"{self.service_name}.log",
                maxBytes=self.max_file_size,
                backupCount=self.backup_count,
                encoding='utf-8'
            ))

        for handler in handlers:
            handler.setLevel(self.log_level)
            handler.addFilter(CorrelationIDFilter())
            handler.setFormatter(JSONFormatter(service_name=self.service_name))
            root_logger.addHandler(handler)

        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_context.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_context.get()


def clear_correlation_id() -> None:
    correlation_id_context.set(None)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def setup_logging_from_env() -> LoggingConfig:
    """Setup logging configuration from environment variables."""
    config = LoggingConfig(
        log_level=os.getenv('LOG_LEVEL', 'INFO'),
        service_name=os.getenv('SERVICE_NAME', 'service-dispatch'),
        log_dir=os.getenv('LOG_DIR'),
        max_file_size=int(os.getenv('LOG_MAX_FILE_SIZE', '10485760')),
        backup_count=int(os.getenv('LOG_BACKUP_COUNT', '5')),
        enable_console=os.getenv('LOG_ENABLE_CONSOLE', 'true').lower() == 'true',
        enable_file=os.getenv('LOG_ENABLE_FILE', 'false').lower() == 'true'
    )

    config.setup_logging()
    return config


def log_with_extra(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    logger.log(level, message, extra=extra)


def log_database_operation(logger: logging.Logger, operation: str, table: str, **extra: Any) -> None:
    log_with_extra(
        logger,
        logging.DEBUG,
        f"Database {operation}: {table}",
        db_operation=operation,
        db_table=table,
        **extra
    )


def log_business_rule_violation(logger: logging.Logger, rule: str, details: str, **extra: Any) -> None:
    """Log a rejected lifecycle action."""
    log_with_extra(
        logger,
        logging.WARNING,
        f"Business rule violation: {rule} - {details}",
        business_rule=rule,
        violation_details=details,
        **extra
    )


def log_state_transition(logger: logging.Logger, booking_id: Any, previous_status: Any, new_status: Any, **extra: Any) -> None:
    """Log a committed booking status change."""
    previous = getattr(previous_status, "value", previous_status)
    current = getattr(new_status, "value", new_status)
    log_with_extra(
        logger,
        logging.INFO,
        f"Booking {booking_id}: {previous} -> {current}",
        booking_id=str(booking_id),
        previous_status=previous,
        new_status=current,
        **{key: str(value) if value is not None else None for key, value in extra.items()}
    )


def log_dispatch_decision(
    logger: logging.Logger,
    booking_id: Any,
    candidate_count: int,
    pool_size: Optional[int] = None,
    agent_id: Optional[Any] = None,
    score: Optional[float] = None
) -> None:
    """Log the outcome of an agent selection.

    ``candidate_count`` is the number of eligible agents after skill and
    location filtering; ``pool_size`` is how many available agents were
    considered.
    """
    if agent_id is None:
        message = f"No eligible agent for booking {booking_id} ({pool_size or 0} available)"
    else:
        message = (
            f"Selected agent {agent_id} for booking {booking_id} "
            f"(score {score:.2f}, {candidate_count} eligible)"
        )
    log_with_extra(
        logger,
        logging.INFO,
        message,
        booking_id=str(booking_id),
        candidate_count=candidate_count,
        pool_size=pool_size,
        agent_id=str(agent_id) if agent_id is not None else None,
        dispatch_score=score
    )
