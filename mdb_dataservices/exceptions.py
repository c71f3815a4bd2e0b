"""
Custom exceptions for MDB_DATASERVICES.

Every error raised across the service facade derives from DataServiceError,
which keeps compatibility with RuntimeError. Backend-native exceptions never
cross the repository boundary; they are wrapped in BackendOperationError.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .models.results import BulkExecuteResult


class DataServiceError(RuntimeError):
    """
    Base exception for data service errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (model,
                 partition_key, operation, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ValidationError(DataServiceError):
    """
    Raised when caller input fails validation.

    Validation always happens before any backend call, so this error
    never indicates a partially applied operation.

    Attributes:
        operation: Name of the operation being validated
        errors: Individual violations, in the order they were found
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        errors: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context)
        self.operation = operation
        self.errors = list(errors or [message])


class MappingError(DataServiceError):
    """
    Raised when a DTO/DAO conversion fails.

    Attributes:
        source_type: Name of the type being converted
        target_type: Name of the type being produced
    """

    def __init__(
        self,
        message: str,
        source_type: Optional[str] = None,
        target_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if source_type:
            context["source_type"] = source_type
        if target_type:
            context["target_type"] = target_type
        super().__init__(message, context=context)
        self.source_type = source_type
        self.target_type = target_type


class UnsupportedSpecificationError(DataServiceError):
    """Raised when a query specification has an unsupported shape."""

    def __init__(
        self,
        message: str,
        specification_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if specification_type:
            context["specification_type"] = specification_type
        super().__init__(message, context=context)
        self.specification_type = specification_type


class UnsupportedOperatorError(DataServiceError):
    """Raised when a property filter uses an unknown comparison operator."""

    def __init__(
        self,
        message: str,
        operator: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operator is not None:
            context["operator"] = operator
        super().__init__(message, context=context)
        self.operator = operator


class ConfigurationError(DataServiceError):
    """
    Raised when configuration is invalid or missing.

    Configuration errors are detected at registration time and are fatal.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error (if available)
            config_value: Configuration value that caused the error (if available)
            context: Additional context information
        """
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class BackendOperationError(DataServiceError):
    """
    Raised when the document store fails unexpectedly.

    The original backend exception is chained as ``__cause__``.

    Attributes:
        operation: Repository operation that failed
        status_code: Backend status code, when the backend reported one
        bulk_result: Partial bulk result for total dispatch failures
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        bulk_result: Optional["BulkExecuteResult"] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(message, context=context)
        self.operation = operation
        self.status_code = status_code
        self.bulk_result = bulk_result
