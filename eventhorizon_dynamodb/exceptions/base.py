from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the storage layer."""

    NOT_FOUND = "not_found"
    MODEL_NOT_CONFIGURED = "model_not_configured"
    MISSING_ID = "missing_id"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    DIAL_FAILURE = "dial_failure"
    SAVE_FAILED = "save_failed"
    QUERY_FAILED = "query_failed"
    VALIDATION = "validation"


class StorageError(Exception):
    """Base exception for all storage layer errors.

    Attributes:
        kind: The error kind, used for programmatic handling
        message: Human-readable error message
        namespace: Namespace the failing operation ran in
        original_error: The original exception that caused this error (if any)
        context: Additional context information about the error
    """

    kind: ErrorKind = ErrorKind.SAVE_FAILED

    def __init__(
        self,
        message: str,
        namespace: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            namespace: Namespace of the call context, None resolves to the default
            original_error: The original exception that caused this error
            context: Additional context information about the error
        """
        if namespace is None:
            from ..namespace import namespace_from_context
            namespace = namespace_from_context()
        self.message = message
        self.namespace = namespace
        self.original_error = original_error
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        error_str = self.message
        if self.original_error is not None:
            error_str += f": {self.original_error}"
        error_str += f" ({self.namespace})"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            error_str += f" (Context: {context_str})"
        return error_str

    def __repr__(self) -> str:
        """Return detailed string representation of the error."""
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, message={self.message!r}, "
            f"namespace={self.namespace!r}, original_error={self.original_error!r}, context={self.context!r})"
        )
