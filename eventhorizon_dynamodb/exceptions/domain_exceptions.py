"""
Domain-Specific Exceptions for the storage layer

Every failure coming out of the entity repository or the event store is one
of the classes below. DynamoDB errors are re-classified by
``core.table_gateway.map_dynamodb_error`` before they reach callers.

Organized by category:
1. Lookup Errors
2. Repository Usage Errors
3. Concurrency Errors
4. Infrastructure Errors
5. Input Validation Errors
"""

from typing import Any, Dict, Optional

from .base import ErrorKind, StorageError


# =============================================================================
# Lookup Errors
# =============================================================================

class EntityNotFoundError(StorageError):
    """Raised when an entity or event is absent.

    Used for:
    - GetItem operations that return no item
    - Delete of an item that does not exist
    - Replace of an event version that was never stored
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        table_name: str,
        key: Dict[str, Any],
        namespace: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        """Initialize not found error.

        Args:
            table_name: Name of the DynamoDB table
            key: The key that was not found
            namespace: Namespace of the call context
            original_error: The original exception that caused this error
        """
        self.table_name = table_name
        self.key = key
        context = {
            'table_name': table_name,
            'key': key
        }
        super().__init__("could not find entity", namespace, original_error, context)


# =============================================================================
# Repository Usage Errors
# =============================================================================

class ModelNotConfiguredError(StorageError):
    """Raised when a read runs before an entity factory was installed."""

    kind = ErrorKind.MODEL_NOT_CONFIGURED

    def __init__(self, namespace: Optional[str] = None):
        super().__init__("model not set", namespace)


class MissingEntityIDError(StorageError):
    """Raised when saving an entity whose identifier is empty."""

    kind = ErrorKind.MISSING_ID

    def __init__(self, namespace: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__("could not save entity: missing entity ID", namespace, None, context)


# =============================================================================
# Concurrency Errors
# =============================================================================

class ConcurrencyConflictError(StorageError):
    """Raised when an optimistic concurrency precondition fails.

    Used for:
    - ConditionalCheckFailedException from DynamoDB
    - Cancelled transactions caused by condition failures or conflicts
    - Event versions that do not continue the expected stream version
    """

    kind = ErrorKind.CONCURRENCY_CONFLICT

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        namespace: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        """Initialize conflict error.

        Args:
            message: Human-readable error message
            resource_id: ID of the conflicting resource (e.g., aggregate_id)
            namespace: Namespace of the call context
            original_error: The original exception that caused this error
        """
        self.resource_id = resource_id
        context = {}
        if resource_id:
            context['resource_id'] = resource_id
        super().__init__(message, namespace, original_error, context)


class InvalidEventError(ConcurrencyConflictError):
    """Raised when a batch of events cannot be appended as one stream write.

    Covers events with mixed aggregate identity, empty batches and batches
    larger than one DynamoDB transaction. Nothing is persisted.
    """

    def __init__(self, message: str = "invalid event", namespace: Optional[str] = None):
        super().__init__(message, None, namespace)


# =============================================================================
# Infrastructure Errors
# =============================================================================

class DialError(StorageError):
    """Raised when a session or connection to DynamoDB cannot be established.

    Used for:
    - Endpoint connection failures and connect timeouts
    - Authentication/authorization failures
    - Invalid endpoint or expired credentials
    """

    kind = ErrorKind.DIAL_FAILURE

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        namespace: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, namespace, original_error, context)


class _OperationFailedError(StorageError):

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        namespace: Optional[str] = None,
        retryable: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.retryable = retryable
        context = dict(context or {})
        if retryable:
            context['retryable'] = True
        super().__init__(message, namespace, original_error, context)


class SaveFailedError(_OperationFailedError):
    """Raised for any write failure not covered by a more specific kind.

    ``retryable`` is set for throttling and transient service errors.
    """

    kind = ErrorKind.SAVE_FAILED


class QueryFailedError(_OperationFailedError):
    """Raised for any read failure not covered by a more specific kind.

    ``retryable`` is set for throttling and transient service errors.
    """

    kind = ErrorKind.QUERY_FAILED


# =============================================================================
# Input Validation Errors
# =============================================================================

class ValidationError(StorageError):
    """Raised when caller input is malformed.

    Used for:
    - Filter placeholders that do not match the argument count
    - Namespaces that produce an invalid table name
    - Stored items the entity factory cannot materialize
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        namespace: Optional[str] = None,
    ):
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: Dictionary of field-level validation errors
            original_error: The original exception that caused this error
            namespace: Namespace of the call context
        """
        self.errors = errors or {}
        context = {}
        if self.errors:
            context['validation_errors'] = self.errors
        super().__init__(message, namespace, original_error, context)
