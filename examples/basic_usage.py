#!/usr/bin/env python3
"""
Basic usage examples for the eventhorizon DynamoDB storage layer.

This example demonstrates:
1. Setting up configuration
2. Storing and querying entities with EntityRepository
3. Appending to and loading aggregate streams with EventStore
4. Handling a concurrency conflict
5. Running the maintenance hook per namespace
"""

from datetime import datetime, timezone
from typing import Optional

from eventhorizon_dynamodb import (
    ConcurrencyConflictError,
    Entity,
    EntityRepository,
    EventStore,
    IndexDefinition,
    IndexQuery,
    StorageConfig,
    new_event_for_aggregate,
    new_id,
    with_namespace,
)


class Customer(Entity):
    name: str
    region_code: int
    tier: Optional[str] = None


def main():
    """Demonstrate basic usage of the repository and the event store."""

    # 1. Configure DynamoDB connection
    print("1. Setting up DynamoDB configuration...")
    config = StorageConfig.from_env()  # Uses environment variables

    # For local development, you might use:
    # config = StorageConfig.for_local_development()

    # 2. Entities
    print("2. Working with entities...")
    customers = EntityRepository(config, "customers")
    region_index = IndexDefinition(name='RegionIndex', partition_key='region_code',
                                   partition_key_type='N', sort_key='tier')
    customers.create_table(indexes=[region_index])
    customers.set_entity_factory(Customer)

    alice = Customer(id=new_id(), name="Alice", region_code=123, tier="gold")
    customers.save(alice)
    customers.save(Customer(id=new_id(), name="Bob", region_code=123, tier="silver"))
    print(f"Found: {customers.find(alice.id).name}")

    gold = customers.find_with_filter_using_index(IndexQuery.for_index(region_index, 123, "gold"))
    print(f"Gold customers in region 123: {[c.name for c in gold]}")

    named = customers.find_with_filter("begins_with($, ?)", "name", "B")
    print(f"Customers starting with B: {[c.name for c in named]}")

    # 3. Events, isolated per tenant namespace
    print("3. Appending events...")
    store = EventStore(config)
    with with_namespace("tenant-a"):
        store.create_table()
        order_id = new_id()
        now = datetime.now(timezone.utc)
        store.save([
            new_event_for_aggregate("OrderPlaced", {"sku": "book", "quantity": 1}, now, "Order", order_id, 1),
            new_event_for_aggregate("OrderPaid", {"amount": 12.5}, now, "Order", order_id, 2),
        ], original_version=0)

        for event in store.load(order_id):
            print(f"  {event} {event.data}")

        # 4. A writer that read the stream at version 1 is now stale
        print("4. Appending from a stale version...")
        try:
            store.save([
                new_event_for_aggregate("OrderCancelled", None, now, "Order", order_id, 2),
            ], original_version=1)
        except ConcurrencyConflictError as e:
            print(f"  Rejected: {e}")

        # 5. Maintenance
        print("5. Running maintenance...")
        report = store.maintainer().run_maintenance()
        print(f"  {report.aggregates_checked} aggregates, {report.events_checked} events, "
              f"healthy={report.healthy}")

    print("\nAll examples completed successfully!")


if __name__ == "__main__":
    main()
