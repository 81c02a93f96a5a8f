from .entity import Entity, EntityFactory, new_id
from .event import Event, MaintenanceReport, VersionGap, new_event_for_aggregate
from .index import IndexDefinition, IndexQuery

__all__ = [
    # Entities
    "Entity",
    "EntityFactory",
    "new_id",
    # Event streams
    "Event",
    "new_event_for_aggregate",
    "MaintenanceReport",
    "VersionGap",
    # Secondary indexes
    "IndexDefinition",
    "IndexQuery",
]
