"""Structured logging configuration for the Ops Assistant core."""

import logging
import sys
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if hasattr(record, "source"):
            log_data["source"] = record.source

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        line = " ".join(parts)

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from ops_assistant.core.config import get_settings

            settings = get_settings()
            if settings.OPS_ENV == "dev":
                logger.setLevel(logging.DEBUG)
            else:
                logger.setLevel(logging.INFO)
        except Exception:
            # Default to INFO if settings not available
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., source="slack")
    """
    extra: dict[str, Any] = {"extra_data": kwargs}
    if "source" in kwargs:
        extra["source"] = kwargs.pop("source")
        extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
