"""
Core infrastructure module for the CMMN compiler.

Provides logging, tracing and metrics helpers shared by every stage.
"""

from .observability import (
    JSONSink,
    LogLevel,
    ObservabilityConfig,
    ObservabilityManager,
    Timer,
    log_execution,
    record_metric,
    span,
)

__all__ = [
    "JSONSink",
    "LogLevel",
    "ObservabilityConfig",
    "ObservabilityManager",
    "Timer",
    "log_execution",
    "record_metric",
    "span",
]
