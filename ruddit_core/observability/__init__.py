"""Observability package for logging, metrics and progress output."""

from ruddit_core.observability.logging import (
    JsonFormatter,
    RunContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from ruddit_core.observability.metrics import MetricsCollector, get_collector
from ruddit_core.observability.progress import ProgressIndicator

__all__ = [
    "JsonFormatter",
    "MetricsCollector",
    "ProgressIndicator",
    "RunContext",
    "StructuredLogger",
    "configure_logging",
    "get_collector",
    "get_logger",
]
