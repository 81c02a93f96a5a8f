"""
Tests for EventStoreMaintainer (eventstore/maintainer.py)
"""

import pytest

from eventhorizon_dynamodb import (
    EntityNotFoundError,
    EventStore,
    EventStoreMaintainer,
    with_namespace,
)
from tests.helpers import make_events

EVENT_TABLE = "eventhorizonEvents_default"


def put_raw_event(dynamodb, aggregate_id: str, version: int) -> None:
    """Write an event item directly, bypassing the store's version checks."""
    dynamodb.Table(EVENT_TABLE).put_item(Item={
        'aggregate_id': aggregate_id,
        'version': version,
        'aggregate_type': 'Order',
        'event_type': 'Imported',
        'timestamp': '2024-01-01T00:00:00+00:00',
        'metadata': {},
    })


class TestRunMaintenance:
    """The periodic maintenance hook."""

    def test_maintainer_is_bound_to_store(self, event_store):
        maintainer = event_store.maintainer()

        assert isinstance(maintainer, EventStoreMaintainer)
        assert maintainer.store is event_store

    def test_healthy_streams(self, event_store):
        event_store.save(make_events("order-a", [1, 2, 3]), 0)
        event_store.save(make_events("order-b", [1]), 0)

        report = event_store.maintainer().run_maintenance()

        assert report.table_exists is True
        assert report.table_name == EVENT_TABLE
        assert report.namespace == "default"
        assert report.aggregates_checked == 2
        assert report.events_checked == 4
        assert report.healthy

    def test_empty_table(self, event_store):
        report = event_store.maintainer().run_maintenance()

        assert report.table_exists is True
        assert report.aggregates_checked == 0
        assert report.healthy

    def test_reports_version_gaps(self, event_store, mock_dynamodb_resource, caplog):
        event_store.save(make_events("order-a", [1]), 0)
        put_raw_event(mock_dynamodb_resource, "order-a", 3)

        report = event_store.maintainer().run_maintenance()

        assert not report.healthy
        assert len(report.gaps) == 1
        gap = report.gaps[0]
        assert (gap.aggregate_id, gap.expected_version, gap.found_version) == ("order-a", 2, 3)
        assert "Version gap" in caplog.text

    def test_stream_not_starting_at_one(self, event_store, mock_dynamodb_resource):
        put_raw_event(mock_dynamodb_resource, "order-a", 2)

        report = event_store.maintainer().run_maintenance()

        assert [(gap.expected_version, gap.found_version) for gap in report.gaps] == [(1, 2)]

    def test_is_read_only_and_repeatable(self, event_store):
        events = make_events("order-a", [1, 2])
        event_store.save(events, 0)
        maintainer = event_store.maintainer()

        first = maintainer.run_maintenance()
        second = maintainer.run_maintenance()

        assert first == second
        assert event_store.load("order-a") == events

    def test_missing_table(self, storage_config, mock_dynamodb_resource):
        store = EventStore(storage_config, dynamodb=mock_dynamodb_resource)

        with with_namespace("never-created"):
            report = store.maintainer().run_maintenance()

        assert report.table_exists is False
        assert report.table_name == "eventhorizonEvents_never-created"
        assert report.events_checked == 0


class TestReplace:
    """Overwriting stored events."""

    def test_replace_existing_event(self, event_store):
        event_store.save(make_events("order-a", [1, 2]), 0)
        corrected = make_events("order-a", [2], data={"sequence": 20})[0]

        event_store.maintainer().replace(corrected)

        stream = event_store.load("order-a")
        assert stream[1].data == {"sequence": 20}
        assert stream[0].data == {"sequence": 1}

    def test_replace_missing_event(self, event_store):
        event_store.save(make_events("order-a", [1]), 0)

        with pytest.raises(EntityNotFoundError) as exc_info:
            event_store.maintainer().replace(make_events("order-a", [2])[0])

        assert exc_info.value.key == {'aggregate_id': 'order-a', 'version': 2}
        assert len(event_store.load("order-a")) == 1


class TestRenameEvent:
    """Renaming event types across a namespace."""

    def test_rename(self, event_store):
        event_store.save(make_events("order-a", [1, 2], event_type="OrderCreated"), 0)
        event_store.save(make_events("order-b", [1], event_type="OrderCreated"), 0)
        event_store.save(make_events("order-b", [2], event_type="OrderShipped"), 1)

        renamed = event_store.maintainer().rename_event("OrderCreated", "OrderPlaced")

        assert renamed == 3
        types = [event.event_type for event in event_store.load_all()]
        assert types == ["OrderPlaced", "OrderPlaced", "OrderPlaced", "OrderShipped"]

    def test_rename_is_repeatable(self, event_store):
        event_store.save(make_events("order-a", [1], event_type="OrderCreated"), 0)
        maintainer = event_store.maintainer()

        assert maintainer.rename_event("OrderCreated", "OrderPlaced") == 1
        assert maintainer.rename_event("OrderCreated", "OrderPlaced") == 0

    def test_rename_only_touches_current_namespace(self, storage_config, mock_dynamodb_resource):
        store = EventStore(storage_config, dynamodb=mock_dynamodb_resource)
        for namespace in ("A", "B"):
            with with_namespace(namespace):
                store.create_table()
                store.save(make_events("order-a", [1], event_type="OrderCreated"), 0)

        with with_namespace("A"):
            store.maintainer().rename_event("OrderCreated", "OrderPlaced")
        with with_namespace("B"):
            assert store.load("order-a")[0].event_type == "OrderCreated"
