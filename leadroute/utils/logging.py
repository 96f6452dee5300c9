"""Structured logging with correlation IDs, operation timing and PII masking."""

import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from leadroute.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
_PHONE_RE = re.compile(r'\+?\d[\d\s().-]{7,}\d')


def generate_correlation_id(prefix: str = "req") -> str:
    """Generate a unique correlation ID for tracing one request or tick."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context."""
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None, prefix: str = "req"):
    """Context manager for correlation ID propagation."""
    if correlation_id is None:
        correlation_id = generate_correlation_id(prefix)

    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Mask email addresses and phone numbers in free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text

    text = _EMAIL_RE.sub('[REDACTED_EMAIL]', text)
    text = _PHONE_RE.sub('[REDACTED_PHONE]', text)
    return text


def mask_contact(value: Optional[str]) -> Optional[str]:
    """Mask a single phone number or email, keeping the last 4 characters."""
    if not value or not LoggingConfig.LOG_MASK_SENSITIVE:
        return value
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _get_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        extra.update(kwargs)
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._get_extra(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._get_extra(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._get_extra(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._get_extra(**kwargs), exc_info=exc_info)


def get_structured_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Context manager for timing operations; slow ones are logged as warnings."""
    if logger is None:
        logger = get_structured_logger(__name__)

    start_time = time.perf_counter()
    logger.debug(f"Starting {operation_name}", operation=operation_name, **context)

    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Completed {operation_name}",
            operation=operation_name,
            processing_time_ms=round(elapsed_ms, 2),
            **context
        )

        if elapsed_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=round(elapsed_ms, 2),
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )


def setup_logging() -> logging.Logger:
    """Set up structured logging and return the package logger."""
    LoggingConfig.setup_logging()
    return get_logger("leadroute")
