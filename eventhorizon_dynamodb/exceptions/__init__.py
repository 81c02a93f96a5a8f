# Base exception class and error kinds
from .base import ErrorKind, StorageError

# Domain-specific exceptions
from .domain_exceptions import (
    ConcurrencyConflictError,
    DialError,
    EntityNotFoundError,
    InvalidEventError,
    MissingEntityIDError,
    ModelNotConfiguredError,
    QueryFailedError,
    SaveFailedError,
    ValidationError,
)

__all__ = [
    # Base exception
    "ErrorKind",
    "StorageError",

    # Domain exceptions (alphabetically ordered)
    "ConcurrencyConflictError",
    "DialError",
    "EntityNotFoundError",
    "InvalidEventError",
    "MissingEntityIDError",
    "ModelNotConfiguredError",
    "QueryFailedError",
    "SaveFailedError",
    "ValidationError",
]
