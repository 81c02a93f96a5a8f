from .config import StorageConfig
from .exceptions import (
    ConcurrencyConflictError,
    DialError,
    EntityNotFoundError,
    ErrorKind,
    InvalidEventError,
    MissingEntityIDError,
    ModelNotConfiguredError,
    QueryFailedError,
    SaveFailedError,
    StorageError,
    ValidationError,
)
from .namespace import (
    DEFAULT_NAMESPACE,
    NamespaceRouter,
    namespace_from_context,
    with_namespace,
)
from .models import (
    # Entities
    Entity,
    EntityFactory,
    new_id,
    # Event streams
    Event,
    new_event_for_aggregate,
    MaintenanceReport,
    VersionGap,
    # Secondary indexes
    IndexDefinition,
    IndexQuery,
)
from .core import (
    TableGateway,
    create_table_gateway,
)
from .repositories import EntityRepository
from .eventstore import EventStore, EventStoreMaintainer

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "StorageConfig",

    # Exceptions
    "ErrorKind",
    "StorageError",
    "ConcurrencyConflictError",
    "DialError",
    "EntityNotFoundError",
    "InvalidEventError",
    "MissingEntityIDError",
    "ModelNotConfiguredError",
    "QueryFailedError",
    "SaveFailedError",
    "ValidationError",

    # Namespaces
    "DEFAULT_NAMESPACE",
    "NamespaceRouter",
    "namespace_from_context",
    "with_namespace",

    # Models
    "Entity",
    "EntityFactory",
    "new_id",
    "Event",
    "new_event_for_aggregate",
    "MaintenanceReport",
    "VersionGap",
    "IndexDefinition",
    "IndexQuery",

    # TableGateway architecture
    "TableGateway",
    "create_table_gateway",

    # Repository and event store
    "EntityRepository",
    "EventStore",
    "EventStoreMaintainer",
]
