"""Structured logging for Ruddit.

JSON-formatted log lines with optional run context, so one query run
(with its facets and comment fetches) can be followed through the logs.

Usage:
    configure_logging("INFO", json_format=True)
    logger = get_logger(__name__)

    context = RunContext(run_id="a1b2", query="r/rust", mode="listing")
    logger.info("Facet fetched", context.for_facet("hot"), posts=25)
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional


_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "ruddit"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a log record as one JSON object per line.

    Warnings and above carry their source location. Extra fields that are
    not JSON-serializable are written as their ``str()``.
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        entry.update(self._extra_fields(record))
        return json.dumps(entry, default=str)

    def _extra_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }


@dataclass
class RunContext:
    """Context attached to every log line emitted during one pipeline run."""

    run_id: Optional[str] = None
    query: Optional[str] = None
    mode: Optional[str] = None
    facet: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name)
        }
        result.update(self.extra)
        return result

    def for_facet(self, facet: str) -> "RunContext":
        """Copy of this context scoped to one facet request."""
        return RunContext(
            run_id=self.run_id,
            query=self.query,
            mode=self.mode,
            facet=facet,
            extra=dict(self.extra),
        )


class StructuredLogger:
    """Logger that takes structured fields as keyword arguments.

    Keyword fields (and the run context, when given) travel as ``extra`` so the
    JSON formatter writes them as top-level keys.
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(name)

    def log(
        self,
        level: int,
        msg: str,
        context: Optional[RunContext] = None,
        exc_info: Any = False,
        **kwargs: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if context is not None:
            kwargs = {**context.to_dict(), **kwargs}
        self._logger.log(level, msg, exc_info=exc_info, extra=kwargs)

    def debug(self, msg: str, context: Optional[RunContext] = None, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[RunContext] = None, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, context, **kwargs)

    def warning(
        self, msg: str, context: Optional[RunContext] = None, exc_info: Any = False, **kwargs: Any
    ) -> None:
        self.log(logging.WARNING, msg, context, exc_info=exc_info, **kwargs)

    def error(
        self, msg: str, context: Optional[RunContext] = None, exc_info: Any = False, **kwargs: Any
    ) -> None:
        self.log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create the structured logger for a module."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit JSON lines instead of plain text.
        service_name: Service name included in every JSON line.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter(service_name=service_name) if json_format else logging.Formatter(TEXT_FORMAT)
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)
