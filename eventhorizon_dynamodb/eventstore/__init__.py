"""
Event Store

Namespaced, append-only aggregate event logs with optimistic concurrency.

Usage:
    from eventhorizon_dynamodb.eventstore import EventStore

    store = EventStore(config)
    with with_namespace("tenant-a"):
        store.create_table()
        store.save(events, original_version=0)
        stream = store.load(aggregate_id)
"""

from .event_store import EventStore, MAX_TRANSACTION_ITEMS
from .maintainer import EventStoreMaintainer

__all__ = [
    "EventStore",
    "EventStoreMaintainer",
    "MAX_TRANSACTION_ITEMS",
]
