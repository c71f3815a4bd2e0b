"""
Observability components.

Provides structured logging with operation context and an injectable
metrics collector.
"""

from .logging import (
    ContextualLoggerAdapter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    get_logging_context,
    log_operation,
    reset_operation_context,
    set_correlation_id,
    set_operation_context,
)
from .metrics import MetricsCollector, OperationMetrics

__all__ = [
    # Metrics
    "MetricsCollector",
    "OperationMetrics",
    # Logging
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "set_operation_context",
    "reset_operation_context",
    "get_logging_context",
    "ContextualLoggerAdapter",
    "get_logger",
    "log_operation",
]
