import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from pythonjsonlogger.json import JsonFormatter
from contextvars import ContextVar
from datetime import datetime, timezone

from hr_leave.core.config import settings

# Correlation id of the caller's unit of work (e.g. the surrounding HTTP request)
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

class CustomJsonFormatter(JsonFormatter):
    """Stamps each record with a UTC timestamp and the active correlation id."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = log_record.get("timestamp") or datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["level"] = (log_record.get("level") or record.levelname).upper()

        corr_id = correlation_id_var.get()
        if corr_id:
            log_record["correlation_id"] = corr_id

@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation id to every log line emitted inside the block.
    A random id is generated when none is given.
    """
    value = correlation_id or uuid.uuid4().hex
    token = correlation_id_var.set(value)
    try:
        yield value
    finally:
        correlation_id_var.reset(token)

def setup_logging(level: Optional[str] = None) -> None:
    logger = logging.getLogger()
    # Idempotent: calling twice must not duplicate every line
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, CustomJsonFormatter):
            logger.removeHandler(handler)
    log_handler = logging.StreamHandler()
    formatter = CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)")
    log_handler.setFormatter(formatter)
    logger.addHandler(log_handler)
    logger.setLevel(level or settings.log_level)

    # Suppress verbose logs from some libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
