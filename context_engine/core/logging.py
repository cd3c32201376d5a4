"""Structured key=value logging for the context engine.

Every component logs through ``get_logger(__name__)``. Records that carry
context fields (passed via ``log_event``) are rendered as trailing
``key=value`` pairs so insight selection, generation attempts, cache
traffic and rebuild scheduling can be grepped by event name.
"""

import logging
import sys
from typing import Any

_LEVEL_BY_ENV = {
    "dev": logging.DEBUG,
    "test": logging.WARNING,
}


class StructuredFormatter(logging.Formatter):
    """Render a record as space-separated key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
        }

        event = getattr(record, "event", None)
        if event:
            log_data["event"] = event

        log_data["message"] = record.getMessage()

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_data.update(context)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{k}={_render(v)}" for k, v in log_data.items())


def _render(value: Any) -> str:
    text = str(value)
    if " " in text and not (text.startswith('"') and text.endswith('"')):
        return f'"{text}"'
    return text


def _resolve_level() -> int:
    try:
        from context_engine.core.config import get_settings

        return _LEVEL_BY_ENV.get(get_settings().CONTEXT_ENGINE_ENV, logging.INFO)
    except Exception:
        # Settings need OPENAI_API_KEY; logging must work without it
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger with a stdout handler using StructuredFormatter
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())

    return logger


def log_event(logger: logging.Logger, level: int, event: str, msg: str = "", **fields: Any) -> None:
    """
    Log a named event with context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        event: Dotted event name (e.g. "embedding_cache.miss")
        msg: Optional human readable message (defaults to the event name)
        **fields: Context fields rendered as key=value pairs
    """
    logger.log(level, msg or event, extra={"event": event, "context": fields})
