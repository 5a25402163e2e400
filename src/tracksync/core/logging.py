"""
Logging utilities for tracksync.

Every line emitted during a sync cycle can be traced back to the entity,
operation key, strategy and retry attempt it belongs to. The fields are
kept in a per-thread CorrelationContext; a ContextFilter installed by
configure_logging copies them onto each record, so plain ``logger.info``
calls inside a cycle are tagged as well.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union


PACKAGE_LOGGER = "tracksync"

# Correlation fields copied onto log records, in output order
CONTEXT_FIELDS = ("run_id", "entity_id", "operation_key", "strategy", "attempt")


def _context_items(record: logging.LogRecord) -> List[Tuple[str, Any]]:
    return [
        (name, getattr(record, name))
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    ]


class CorrelationContext:
    """
    Context manager holding correlation fields for the current thread.

    Contexts nest: an inner context inherits the outer one's fields and may
    override them. Worker threads start with an empty context, so concurrent
    sync cycles never see each other's fields.

    Example:
        >>> with CorrelationContext(entity_id="PROJ-1", strategy="merge"):
        ...     with CorrelationContext(operation_key="fetch-task"):
        ...         logger.info("fetching")
    """

    _local = threading.local()

    def __init__(
        self,
        entity_id: Optional[str] = None,
        operation_key: Optional[str] = None,
        strategy: Optional[str] = None,
        attempt: Optional[int] = None,
        **extra: Any,
    ):
        fields = dict(
            entity_id=entity_id,
            operation_key=operation_key,
            strategy=strategy,
            attempt=attempt,
            **extra,
        )
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._outer: Optional["CorrelationContext"] = None

    def __enter__(self) -> "CorrelationContext":
        self._outer = getattr(self._local, "current", None)
        if self._outer is not None:
            self.context = {**self._outer.context, **self.context}
        self._local.current = self
        return self

    def __exit__(self, *args) -> None:
        self._local.current = self._outer

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Fields of the innermost active context (empty dict if none)."""
        current = getattr(cls._local, "current", None)
        return dict(current.context) if current is not None else {}


class ContextFilter(logging.Filter):
    """Copies the active CorrelationContext onto records that lack the fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in CorrelationContext.get_current().items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keys: level, logger, thread, message, an ISO timestamp (optional), the
    correlation fields that are set, and ``exception`` when the record
    carries exc_info.
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {}
        if self.include_timestamp:
            entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        entry.update(
            level=record.levelname,
            logger=record.name,
            thread=record.threadName,
            message=record.getMessage(),
        )
        entry.update(_context_items(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Plain text with the correlation fields in a trailing bracket.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [entity_id=X operation_key=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        fmt = "%(name)s - %(levelname)s - %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s - " + fmt
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        items = _context_items(record)
        if not items:
            return line
        return f"{line} [{' '.join(f'{k}={v}' for k, v in items)}]"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    structured: bool = False,
) -> logging.Logger:
    """
    Install a stderr handler on the ``tracksync`` package logger.

    Calling it again only adjusts the level; the first handler stays.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        format_string: Custom format string (ignored when structured)
        include_timestamp: Whether lines start with a timestamp
        structured: JSON lines instead of human-readable text

    Returns:
        The package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    if package_logger.handlers:
        for handler in package_logger.handlers:
            handler.setLevel(level)
        return package_logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ContextFilter())
    if structured:
        handler.setFormatter(StructuredFormatter(include_timestamp=include_timestamp))
    elif format_string:
        handler.setFormatter(logging.Formatter(format_string))
    else:
        handler.setFormatter(HumanReadableFormatter(include_timestamp=include_timestamp))
    package_logger.addHandler(handler)
    return package_logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log ``message`` with the active correlation fields plus ``extra``.

    Unlike the ContextFilter this works without configure_logging, which
    keeps the fields visible to handlers installed by test tooling.
    """
    fields = CorrelationContext.get_current()
    fields.update(extra)
    logger.log(level, message, extra=fields)
