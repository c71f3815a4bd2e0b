"""
Structured logging utilities for MDB_DATASERVICES.

Provides correlation IDs and per-operation context (model, partition key)
carried in contextvars, so every record logged inside an operation can be
tied back to it.
"""

import contextvars
import logging
import uuid
from datetime import datetime
from typing import Any

# Context variable for correlation ID
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Context variable for operation context
_operation_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "operation_context", default=None
)


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set a correlation ID in the current context.

    Args:
        correlation_id: Optional correlation ID (generates new one if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def set_operation_context(
    model: str | None = None, partition_key: Any = None, **kwargs: Any
) -> contextvars.Token:
    """
    Set operation context for logging.

    Args:
        model: Stored model name
        partition_key: Partition the operation is scoped to
        **kwargs: Additional context (operation, batch_size, etc.)

    Returns:
        Token that restores the previous context via reset_operation_context()
    """
    context = {"model": model, **kwargs}
    if partition_key is not None:
        context["partition_key"] = partition_key
    return _operation_context.set(context)


def reset_operation_context(token: contextvars.Token) -> None:
    _operation_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """
    Get current logging context (correlation ID and operation context).

    Returns:
        Dictionary with context information
    """
    context: dict[str, Any] = {
        "timestamp": datetime.now().isoformat(),
    }

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    operation_context = _operation_context.get()
    if operation_context:
        context.update(operation_context)

    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds correlation ID and operation context to records."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context()

        extra = kwargs.get("extra", {})
        if extra:
            context.update(extra)

        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    """
    Get a contextual logger.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log a repository operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "ProductDocument.create_item")
        level: Log level
        success: Whether operation succeeded
        duration_ms: Operation duration in milliseconds
        **context: Additional context (request_charge, item_count, etc.)
    """
    log_context = get_logging_context()
    log_context.update({"operation": operation, "success": success})

    if duration_ms is not None:
        log_context["duration_ms"] = round(duration_ms, 2)

    if context:
        log_context.update(context)

    message = f"Operation: {operation}"
    if not success:
        message = f"Operation failed: {operation}"
    if duration_ms is not None:
        message += f" (duration: {duration_ms:.2f}ms)"
    if "request_charge" in context:
        message += f" (request_charge: {context['request_charge']:.2f})"

    logger.log(level, message, extra=log_context)
